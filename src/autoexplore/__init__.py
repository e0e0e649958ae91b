"""
autoexplore: web application exploration engine.

Crawls a running web application through the W3C WebDriver protocol,
builds a graph of pages and states, fingerprints UI elements so they can
be found again after markup changes, and compresses recorded transitions
into user journeys for test synthesis.
"""

__version__ = "0.1.0"

from autoexplore.concurrency import (
    BrowserSession,
    BrowserSessionPool,
    PoolExhaustedError,
    SessionCreationError,
)
from autoexplore.config import (
    AuthConfig,
    ExplorerConfig,
    MatchThresholds,
    SignaturePolicy,
    load_explorer_config,
)
from autoexplore.crawler import (
    AuthenticationFailure,
    CrawlContext,
    CrawlSummary,
    InteractionFailure,
    InteractiveExplorer,
    Page,
    PageType,
    StateFingerprintEngine,
    StateSignature,
    StopReason,
    Transition,
    TransitionKind,
    UIComponent,
)
from autoexplore.discovery import FieldDependency, FlowGraphAnalyzer, UserJourney
from autoexplore.generative import JourneyTestPlanner, PromptBuilder, TestSynthesizer
from autoexplore.healing import (
    ElementFingerprint,
    ElementIdentityResolver,
    ElementNotFound,
    Found,
    NotFound,
)
from autoexplore.storage import ExplorationRepository, InMemoryExplorationRepository
from autoexplore.webdriver import BrowserKind, NavigationTimeout, WebDriverClient, WebDriverError

__all__ = [
    "__version__",
    # Sessions
    "BrowserKind",
    "BrowserSession",
    "BrowserSessionPool",
    "PoolExhaustedError",
    "SessionCreationError",
    "WebDriverClient",
    "WebDriverError",
    "NavigationTimeout",
    # Configuration
    "AuthConfig",
    "ExplorerConfig",
    "MatchThresholds",
    "SignaturePolicy",
    "load_explorer_config",
    # Exploration
    "AuthenticationFailure",
    "CrawlContext",
    "CrawlSummary",
    "InteractionFailure",
    "InteractiveExplorer",
    "Page",
    "PageType",
    "StateFingerprintEngine",
    "StateSignature",
    "StopReason",
    "Transition",
    "TransitionKind",
    "UIComponent",
    # Identity
    "ElementFingerprint",
    "ElementIdentityResolver",
    "ElementNotFound",
    "Found",
    "NotFound",
    # Discovery
    "FieldDependency",
    "FlowGraphAnalyzer",
    "UserJourney",
    # Test synthesis
    "JourneyTestPlanner",
    "PromptBuilder",
    "TestSynthesizer",
    # Persistence
    "ExplorationRepository",
    "InMemoryExplorationRepository",
]
