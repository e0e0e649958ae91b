"""
Configuration models for exploration runs.

Provides typed configuration for:
- Crawl budgets (pages, depth, wall-clock time)
- Worker and browser session limits
- Browser launch options (kind, headless, viewport)
- Optional form authentication
- Element matching and state signature tuning
- YAML file and environment variable loading
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Self

import structlog
import yaml

from autoexplore.webdriver.capabilities import BrowserKind

logger = structlog.get_logger(__name__)

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "logout",
    "sign-out",
    "delete",
    "remove",
    "/api/",
    "/auth/",
    "/settings/",
    "/admin/",
    "/actuator/",
    "/metrics/",
    "/monitoring/",
)


@dataclass(frozen=True, slots=True)
class MatchThresholds:
    """
    Tuning for element fingerprint comparison.

    Each identity signal carries a weight. Two fingerprints match when their
    tags are equal and the weight of agreeing signals, divided by the weight
    of signals that could be compared, exceeds ``agreement_ratio``.
    """

    id_weight: float = 3.0
    name_weight: float = 2.0
    text_weight: float = 2.0
    attribute_weight: float = 2.0
    geometry_weight: float = 1.0
    visual_weight: float = 1.0

    text_similarity: float = 0.8
    """Minimum normalized text similarity for the text signal to agree."""

    attribute_overlap: float = 0.5
    """Minimum shared-attribute ratio for the attribute signal to agree."""

    position_tolerance_px: float = 50.0
    """Maximum x/y drift for the geometry signal to agree."""

    size_tolerance_ratio: float = 0.25
    """Maximum relative width/height change for the geometry signal to agree."""

    visual_max_hamming: int = 10
    """Maximum differing bits between two visual hashes."""

    agreement_ratio: float = 0.5
    """Weighted share of agreeing signals required for a match."""

    def validate(self) -> None:
        """Validate thresholds are sensible."""
        weights = (
            self.id_weight,
            self.name_weight,
            self.text_weight,
            self.attribute_weight,
            self.geometry_weight,
            self.visual_weight,
        )
        if any(w < 0 for w in weights):
            raise ValueError("signal weights must be non-negative")
        if not any(weights):
            raise ValueError("at least one signal weight must be positive")
        for name in ("text_similarity", "attribute_overlap", "agreement_ratio"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1")
        if self.position_tolerance_px < 0 or self.size_tolerance_ratio < 0:
            raise ValueError("geometry tolerances must be non-negative")
        if not 0 <= self.visual_max_hamming <= 64:
            raise ValueError("visual_max_hamming must be between 0 and 64")


@dataclass(frozen=True, slots=True)
class SignaturePolicy:
    """
    Formula used to summarize the current application state.

    Visible text digests are sensitive to clocks and counters; masking
    digits trades some precision for fewer spurious new states.
    """

    include_query: bool = True
    """Keep the (sorted) query string as part of the URL component."""

    text_limit: int | None = None
    """Only digest the first N characters of visible text."""

    mask_digits: bool = False
    """Replace every digit with '0' before digesting."""

    collapse_whitespace: bool = True
    """Collapse runs of whitespace before digesting."""


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """
    Form login performed once before a link crawl.

    Authentication is attempted only when username, password and login URL
    are all present.
    """

    username: str = ""
    """Account name typed into the username field."""

    password: str = ""
    """Account password."""

    login_url: str = ""
    """Page hosting the login form."""

    username_selector: str = "input[name='username']"
    """Preferred CSS selector for the username field."""

    password_selector: str = "input[name='password']"
    """Preferred CSS selector for the password field."""

    submit_selector: str = "button[type='submit']"
    """Preferred CSS selector for the submit button."""

    @property
    def enabled(self) -> bool:
        return bool(self.username and self.password and self.login_url)


@dataclass(slots=True)
class ExplorerConfig:
    """
    Configuration for link crawls and interactive exploration.

    Supports loading from YAML and environment variables with sensible
    defaults.
    """

    webdriver_url: str = "http://localhost:4444"
    """Remote WebDriver endpoint."""

    browser: BrowserKind = BrowserKind.CHROME
    """Browser engine for new sessions."""

    headless: bool = True
    """Run browsers without a visible window."""

    viewport_width: int = 1366
    """Browser window width in pixels."""

    viewport_height: int = 768
    """Browser window height in pixels."""

    user_agent: str = "autoexplore/0.1"
    """User agent sent by crawl sessions."""

    max_pages: int = 100
    """Maximum distinct URLs (or states) visited per run."""

    max_depth: int = 5
    """Maximum interaction depth for interactive exploration."""

    page_load_timeout_ms: int = 30000
    """Bounded wait for a single navigation."""

    crawl_timeout_seconds: float = 3600.0
    """Wall-clock budget for a whole run."""

    max_concurrent_crawlers: int = field(default_factory=lambda: os.cpu_count() or 4)
    """Link-crawl worker count."""

    max_interactions_per_page: int = 20
    """Cap on interactive elements tried per state."""

    include_forms: bool = True
    """Interact with form fields during exploration."""

    track_state_variables: bool = True
    """Diff web storage, cookies and hidden inputs around each interaction."""

    change_detection_timeout_seconds: float = 2.0
    """How long to watch for a state change after an interaction."""

    poll_interval_seconds: float = 0.25
    """Fixed cadence of bounded waits."""

    delay_between_requests_ms: int = 500
    """Pause after each page load in a link crawl worker."""

    take_screenshots: bool = False
    """Save a screenshot of every analyzed page."""

    screenshot_dir: Path = field(default_factory=lambda: Path("output/screenshots"))
    """Directory for page screenshots."""

    capture_visual_signatures: bool = True
    """Compute perceptual hashes when fingerprinting visible elements."""

    exclude_url_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    """Regular expressions for URLs never crawled."""

    max_sessions: int | None = None
    """Upper bound on pooled browser sessions; None means unbounded."""

    session_idle_timeout_seconds: float = 600.0
    """Sessions idle longer than this are destroyed by the sweeper."""

    sweep_interval_seconds: float = 60.0
    """Interval of the background idle sweep."""

    acquire_timeout_seconds: float = 30.0
    """Longest wait for a free session when the pool is at capacity."""

    auth: AuthConfig = field(default_factory=AuthConfig)
    """Optional authentication."""

    matching: MatchThresholds = field(default_factory=MatchThresholds)
    """Element fingerprint matching thresholds."""

    signature_policy: SignaturePolicy = field(default_factory=SignaturePolicy)
    """State signature formula."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values."""
        if self.max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        if self.max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        if self.max_concurrent_crawlers < 1:
            raise ValueError("max_concurrent_crawlers must be at least 1")
        if self.max_interactions_per_page < 1:
            raise ValueError("max_interactions_per_page must be at least 1")
        if self.page_load_timeout_ms <= 0:
            raise ValueError("page_load_timeout_ms must be positive")
        if self.crawl_timeout_seconds <= 0:
            raise ValueError("crawl_timeout_seconds must be positive")
        if self.viewport_width <= 0 or self.viewport_height <= 0:
            raise ValueError("viewport dimensions must be positive")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.change_detection_timeout_seconds < 0:
            raise ValueError("change_detection_timeout_seconds must be non-negative")
        if self.delay_between_requests_ms < 0:
            raise ValueError("delay_between_requests_ms must be non-negative")
        if self.max_sessions is not None and self.max_sessions < 1:
            raise ValueError("max_sessions must be at least 1 when set")
        if self.acquire_timeout_seconds <= 0:
            raise ValueError("acquire_timeout_seconds must be positive")
        for pattern in self.exclude_url_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid exclude pattern {pattern!r}: {e}") from e
        self.matching.validate()

    @property
    def viewport(self) -> tuple[int, int]:
        return (self.viewport_width, self.viewport_height)

    @property
    def page_load_timeout_seconds(self) -> float:
        return self.page_load_timeout_ms / 1000

    def should_exclude_url(self, url: str) -> bool:
        """Check whether a URL matches any exclude pattern."""
        return any(re.search(pattern, url) for pattern in self.exclude_url_patterns)

    def with_overrides(self, **overrides: Any) -> Self:
        """Create a new config with specified overrides."""
        return replace(self, **overrides)


def load_explorer_config(
    config_file: Path | str | None = None,
    env_prefix: str = "AUTOEXPLORE_",
    defaults: ExplorerConfig | None = None,
) -> ExplorerConfig:
    """
    Load explorer configuration from a YAML file and environment variables.

    File values are applied first, then environment variables (all
    optional):
    - AUTOEXPLORE_WEBDRIVER_URL: Remote WebDriver endpoint
    - AUTOEXPLORE_BROWSER: chrome/firefox/edge
    - AUTOEXPLORE_HEADLESS: Run headless
    - AUTOEXPLORE_MAX_PAGES: Page budget
    - AUTOEXPLORE_MAX_DEPTH: Interaction depth budget
    - AUTOEXPLORE_PAGE_LOAD_TIMEOUT_MS: Navigation timeout
    - AUTOEXPLORE_CRAWL_TIMEOUT: Whole-run timeout in seconds
    - AUTOEXPLORE_MAX_CONCURRENT_CRAWLERS: Link-crawl workers
    - AUTOEXPLORE_MAX_INTERACTIONS_PER_PAGE: Interaction cap per state
    - AUTOEXPLORE_INCLUDE_FORMS: Interact with form fields
    - AUTOEXPLORE_TAKE_SCREENSHOTS / AUTOEXPLORE_SCREENSHOT_DIR
    - AUTOEXPLORE_AUTH_USERNAME / _PASSWORD / _LOGIN_URL

    Args:
        config_file: Optional YAML file with top-level field names
        env_prefix: Prefix for environment variables
        defaults: Default configuration to use as base

    Returns:
        Loaded and validated ExplorerConfig
    """
    base = defaults or ExplorerConfig()
    if config_file is not None:
        base = _apply_file(base, Path(config_file))

    def get_str(key: str, default: str) -> str:
        return os.environ.get(f"{env_prefix}{key}", default)

    def get_int(key: str, default: int) -> int:
        value = os.environ.get(f"{env_prefix}{key}")
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Invalid integer value for config",
                key=key,
                value=value,
                using_default=default,
            )
            return default

    def get_float(key: str, default: float) -> float:
        value = os.environ.get(f"{env_prefix}{key}")
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            logger.warning(
                "Invalid float value for config",
                key=key,
                value=value,
                using_default=default,
            )
            return default

    def get_bool(key: str, default: bool) -> bool:
        value = os.environ.get(f"{env_prefix}{key}")
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def get_browser(key: str, default: BrowserKind) -> BrowserKind:
        value = os.environ.get(f"{env_prefix}{key}")
        if value is None:
            return default
        try:
            return BrowserKind(value.lower())
        except ValueError:
            logger.warning(
                "Invalid browser kind",
                key=key,
                value=value,
                valid_values=list(BrowserKind),
                using_default=default,
            )
            return default

    auth = AuthConfig(
        username=get_str("AUTH_USERNAME", base.auth.username),
        password=get_str("AUTH_PASSWORD", base.auth.password),
        login_url=get_str("AUTH_LOGIN_URL", base.auth.login_url),
        username_selector=base.auth.username_selector,
        password_selector=base.auth.password_selector,
        submit_selector=base.auth.submit_selector,
    )

    return base.with_overrides(
        webdriver_url=get_str("WEBDRIVER_URL", base.webdriver_url),
        browser=get_browser("BROWSER", base.browser),
        headless=get_bool("HEADLESS", base.headless),
        max_pages=get_int("MAX_PAGES", base.max_pages),
        max_depth=get_int("MAX_DEPTH", base.max_depth),
        page_load_timeout_ms=get_int("PAGE_LOAD_TIMEOUT_MS", base.page_load_timeout_ms),
        crawl_timeout_seconds=get_float("CRAWL_TIMEOUT", base.crawl_timeout_seconds),
        max_concurrent_crawlers=get_int(
            "MAX_CONCURRENT_CRAWLERS", base.max_concurrent_crawlers
        ),
        max_interactions_per_page=get_int(
            "MAX_INTERACTIONS_PER_PAGE", base.max_interactions_per_page
        ),
        include_forms=get_bool("INCLUDE_FORMS", base.include_forms),
        track_state_variables=get_bool("TRACK_STATE_VARIABLES", base.track_state_variables),
        take_screenshots=get_bool("TAKE_SCREENSHOTS", base.take_screenshots),
        screenshot_dir=Path(get_str("SCREENSHOT_DIR", str(base.screenshot_dir))),
        auth=auth,
    )


def _apply_file(base: ExplorerConfig, path: Path) -> ExplorerConfig:
    """Overlay values from a YAML file onto a base config."""
    if not path.exists():
        logger.warning("Config file not found", path=str(path))
        return base

    with path.open() as f:
        file_config = yaml.safe_load(f) or {}

    known = {f.name for f in fields(ExplorerConfig)}
    overrides: dict[str, Any] = {}
    for key, value in file_config.items():
        if key not in known:
            logger.warning("Unknown config key ignored", key=key, path=str(path))
            continue
        if key == "auth":
            overrides[key] = AuthConfig(**value)
        elif key == "matching":
            overrides[key] = MatchThresholds(**value)
        elif key == "signature_policy":
            overrides[key] = SignaturePolicy(**value)
        elif key == "browser":
            overrides[key] = BrowserKind(str(value).lower())
        elif key == "screenshot_dir":
            overrides[key] = Path(value)
        elif key == "exclude_url_patterns":
            overrides[key] = tuple(value)
        else:
            overrides[key] = value

    return base.with_overrides(**overrides)
