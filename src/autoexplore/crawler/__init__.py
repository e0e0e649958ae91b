"""Breadth link crawling and depth interactive exploration."""

from autoexplore.crawler.auth import Authenticator
from autoexplore.crawler.context import CrawlContext, CrawlSummary, StopReason
from autoexplore.crawler.errors import AuthenticationFailure, ExplorationError, InteractionFailure
from autoexplore.crawler.explorer import InteractiveExplorer
from autoexplore.crawler.interactive import ChangeKind, DepthExplorer
from autoexplore.crawler.link_crawler import LinkCrawler
from autoexplore.crawler.models import (
    FieldSnapshot,
    InteractionRecord,
    Page,
    PageType,
    Transition,
    TransitionKind,
    UIComponent,
)
from autoexplore.crawler.page_analyzer import PageAnalyzer
from autoexplore.crawler.state import StateFingerprintEngine, StateSignature, normalize_url

__all__ = [
    "AuthenticationFailure",
    "Authenticator",
    "ChangeKind",
    "CrawlContext",
    "CrawlSummary",
    "DepthExplorer",
    "ExplorationError",
    "FieldSnapshot",
    "InteractionFailure",
    "InteractionRecord",
    "InteractiveExplorer",
    "LinkCrawler",
    "Page",
    "PageAnalyzer",
    "PageType",
    "StateFingerprintEngine",
    "StateSignature",
    "StopReason",
    "Transition",
    "TransitionKind",
    "UIComponent",
    "normalize_url",
]
