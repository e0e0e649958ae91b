"""
Command-line interface for autoexplore.

Provides commands for link crawling, interactive exploration, form
submission tracking and journey discovery from saved results.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import structlog

from autoexplore import __version__
from autoexplore.concurrency.session_pool import BrowserSessionPool
from autoexplore.config import AuthConfig, ExplorerConfig, load_explorer_config
from autoexplore.crawler.explorer import InteractiveExplorer
from autoexplore.crawler.models import Page, Transition
from autoexplore.discovery.flow_analyzer import FlowGraphAnalyzer
from autoexplore.storage.repository import InMemoryExplorationRepository

logger = structlog.get_logger(__name__)


def main() -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args()

    configure_logging(args.verbose if hasattr(args, "verbose") else False)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        logger.error("Command failed", error=str(e))
        if hasattr(args, "verbose") and args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="autoexplore",
        description="Discover web application pages, states and user journeys",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--config", "-c",
        help="YAML configuration file",
    )

    # Accepted after the subcommand too; SUPPRESS keeps a value given before it.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Enable verbose output",
    )
    common.add_argument(
        "--config", "-c",
        default=argparse.SUPPRESS,
        help="YAML configuration file",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")

    crawl_parser = subparsers.add_parser(
        "crawl",
        parents=[common],
        help="Breadth link crawl from a URL",
    )
    crawl_parser.add_argument("url", help="Base URL; only same-host links are followed")
    crawl_parser.add_argument(
        "--max-pages",
        type=int,
        help="Maximum number of distinct URLs to visit",
    )
    crawl_parser.add_argument(
        "--username", "-u",
        help="Username for form login (optional)",
    )
    crawl_parser.add_argument(
        "--password", "-p",
        help="Password for form login (optional)",
    )
    crawl_parser.add_argument(
        "--login-url",
        help="Login page URL (default: the base URL)",
    )
    crawl_parser.add_argument(
        "--screenshots",
        metavar="DIR",
        help="Save a screenshot of every page into DIR",
    )
    crawl_parser.add_argument(
        "--output", "-o",
        help="Output file for JSON results (default: stdout)",
    )
    crawl_parser.set_defaults(func=cmd_crawl)

    explore_parser = subparsers.add_parser(
        "explore",
        parents=[common],
        help="Interactive depth exploration from a URL",
    )
    explore_parser.add_argument("url", help="Start URL")
    explore_parser.add_argument(
        "--max-depth", "-d",
        type=int,
        help="Maximum interaction depth",
    )
    explore_parser.add_argument(
        "--max-interactions",
        type=int,
        help="Maximum interactions tried per page",
    )
    explore_parser.add_argument(
        "--no-forms",
        action="store_true",
        help="Do not interact with form fields",
    )
    explore_parser.add_argument(
        "--output", "-o",
        help="Output file for JSON results (default: stdout)",
    )
    explore_parser.set_defaults(func=cmd_explore)

    journeys_parser = subparsers.add_parser(
        "journeys",
        parents=[common],
        help="Discover user journeys from saved crawl or exploration results",
    )
    journeys_parser.add_argument("results", help="JSON results written by crawl or explore")
    journeys_parser.add_argument(
        "--min-length",
        type=int,
        default=2,
        help="Minimum transitions per journey (default: 2)",
    )
    journeys_parser.add_argument(
        "--max-count",
        type=int,
        default=10,
        help="Maximum number of journeys (default: 10)",
    )
    journeys_parser.add_argument(
        "--max-depth",
        type=int,
        default=5,
        help="Maximum transitions followed per path (default: 5)",
    )
    journeys_parser.add_argument(
        "--output", "-o",
        help="Output file for JSON results (default: stdout)",
    )
    journeys_parser.set_defaults(func=cmd_journeys)

    submit_parser = subparsers.add_parser(
        "submit",
        parents=[common],
        help="Fill and submit the form on a page and report data transformations",
    )
    submit_parser.add_argument("url", help="Page holding the form")
    submit_parser.add_argument(
        "--output", "-o",
        help="Output file for JSON results (default: stdout)",
    )
    submit_parser.set_defaults(func=cmd_submit)

    return parser


def configure_logging(verbose: bool) -> None:
    """Configure structured logging."""
    level = "DEBUG" if verbose else "INFO"
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if verbose else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    import logging

    logging.basicConfig(level=getattr(logging, level), stream=sys.stderr)


def cmd_crawl(args: argparse.Namespace) -> int:
    """Run a breadth link crawl."""
    config = load_explorer_config(args.config)
    overrides: dict[str, Any] = {}
    if args.max_pages:
        overrides["max_pages"] = args.max_pages
    if args.username and args.password:
        overrides["auth"] = AuthConfig(
            username=args.username,
            password=args.password,
            login_url=args.login_url or args.url,
        )
    if args.screenshots:
        overrides["take_screenshots"] = True
        overrides["screenshot_dir"] = Path(args.screenshots)
    if overrides:
        config = config.with_overrides(**overrides)

    result = asyncio.run(_run_crawl(config, args.url))
    _write_output(result, args.output)
    return 0


def cmd_explore(args: argparse.Namespace) -> int:
    """Run an interactive depth exploration."""
    config = load_explorer_config(args.config)
    result = asyncio.run(
        _run_explore(
            config,
            args.url,
            max_depth=args.max_depth,
            include_forms=False if args.no_forms else None,
            max_interactions=args.max_interactions,
        )
    )
    _write_output(result, args.output)
    return 0


def cmd_submit(args: argparse.Namespace) -> int:
    """Fill and submit the form on a page."""
    config = load_explorer_config(args.config)
    result = asyncio.run(_run_submit(config, args.url))
    _write_output(result, args.output)
    return 0


def cmd_journeys(args: argparse.Namespace) -> int:
    """Discover journeys from a saved results file."""
    path = Path(args.results)
    if not path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return 1

    data = json.loads(path.read_text())
    analyzer = FlowGraphAnalyzer()
    for page in data.get("pages", []):
        analyzer.record_page(Page(url=page["url"], title=page.get("title", ""), id=page["id"]))
    analyzer.record_many(Transition.from_dict(t) for t in data.get("transitions", []))

    journeys = analyzer.discover_journeys(
        min_length=args.min_length,
        max_count=args.max_count,
        max_depth=args.max_depth,
    )
    _write_output({"journeys": [j.to_dict() for j in journeys]}, args.output)
    return 0


async def _run_crawl(config: ExplorerConfig, url: str) -> dict[str, Any]:
    repository = InMemoryExplorationRepository()
    async with BrowserSessionPool(config) as pool:
        explorer = InteractiveExplorer(pool, config, repository=repository)
        await explorer.crawl(url)
        return _results(explorer, repository)


async def _run_explore(
    config: ExplorerConfig,
    url: str,
    max_depth: int | None,
    include_forms: bool | None,
    max_interactions: int | None,
) -> dict[str, Any]:
    repository = InMemoryExplorationRepository()
    async with BrowserSessionPool(config) as pool:
        explorer = InteractiveExplorer(pool, config, repository=repository)
        await explorer.explore(
            url,
            max_depth=max_depth,
            include_forms=include_forms,
            max_interactions_per_page=max_interactions,
        )
        result = _results(explorer, repository)
        dependencies = explorer.flow_analyzer.infer_field_dependencies(explorer.interaction_log())
        result["field_dependencies"] = [
            {"controlled": d.controlled, "controller": d.controller, "effect": d.effect.value}
            for d in dependencies
        ]
        changes = explorer.state_variable_changes()
        result["state_variables"] = [c.to_dict() for c in changes]
        result["variable_dependencies"] = [
            d.to_dict() for d in explorer.flow_analyzer.infer_variable_dependencies(changes)
        ]
        return result


async def _run_submit(config: ExplorerConfig, url: str) -> dict[str, Any]:
    async with BrowserSessionPool(config) as pool:
        explorer = InteractiveExplorer(pool, config)
        submission = await explorer.track_form_submission(url)
        return submission.to_dict()


def _results(
    explorer: InteractiveExplorer,
    repository: InMemoryExplorationRepository,
) -> dict[str, Any]:
    summary = explorer.last_summary
    return {
        "summary": summary.to_dict() if summary else None,
        **repository.to_dict(),
        "journeys": [j.to_dict() for j in explorer.flow_analyzer.discover_journeys()],
    }


def _write_output(data: dict[str, Any], output: str | None) -> None:
    content = json.dumps(data, indent=2, default=str)
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content)
        print(f"Results written to {output}")
    else:
        print(content)


if __name__ == "__main__":
    sys.exit(main())
