"""Command-line interface for repointel.

Prints aggregated GitHub repository intelligence as JSON.

Usage:
    repointel repos --owner octocat
    repointel repos --owner octocat --enriched --include-forks
    repointel details hello-world --owner octocat
    repointel portfolio --owner octocat
    repointel tree hello-world --path src/ --recursive
    repointel file hello-world README.md
"""

import argparse
import asyncio
import functools
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Optional

from repointel import __version__
from repointel.cache import TTLCache
from repointel.clients.github import GitHubClient
from repointel.config import settings
from repointel.pipeline.aggregator import Aggregator

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=1)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_NOT_FOUND = 3
EXIT_INTERRUPTED = 130


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser with all commands and arguments.
    """
    parser = argparse.ArgumentParser(
        prog="repointel",
        description="repointel — GitHub repository intelligence",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  repointel repos --owner octocat --enriched
  repointel details hello-world --owner octocat
  repointel portfolio --owner octocat

Set GITHUB_TOKEN for the authenticated rate limit and GITHUB_OWNER to skip --owner.
        """,
    )

    # Shared --owner option
    owner_parent = argparse.ArgumentParser(add_help=False)
    owner_parent.add_argument(
        "--owner",
        type=str,
        default=None,
        help="Repository owner (default: $GITHUB_OWNER)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    repos_parser = subparsers.add_parser(
        "repos",
        parents=[owner_parent],
        help="List repositories",
        description="List repositories, optionally with derived activity data",
    )
    repos_parser.add_argument(
        "--enriched",
        action="store_true",
        help="Include activity status, velocity, releases and open counts",
    )
    repos_parser.add_argument(
        "--include-forks",
        action="store_true",
        help="Include forked (and, with --enriched, archived) repositories",
    )

    details_parser = subparsers.add_parser(
        "details",
        parents=[owner_parent],
        help="Show full details for one repository",
    )
    details_parser.add_argument("name", type=str, help="Repository name")

    subparsers.add_parser(
        "portfolio",
        parents=[owner_parent],
        help="Compute portfolio-level metrics",
    )

    tree_parser = subparsers.add_parser(
        "tree",
        parents=[owner_parent],
        help="List the file tree of a repository",
    )
    tree_parser.add_argument("name", type=str, help="Repository name")
    tree_parser.add_argument(
        "--path",
        type=str,
        default="",
        help="Only keep entries under this path prefix",
    )
    tree_parser.add_argument(
        "--recursive",
        action="store_true",
        help="List the whole tree instead of the top level",
    )

    file_parser = subparsers.add_parser(
        "file",
        parents=[owner_parent],
        help="Print the content of one file",
    )
    file_parser.add_argument("name", type=str, help="Repository name")
    file_parser.add_argument("path", type=str, help="File path inside the repository")

    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context.

    Spins up a new event loop in a dedicated thread to avoid conflicts
    with any existing event loop.
    """
    def _target():
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    future = _executor.submit(_target)
    return future.result()


async def _with_aggregator(operation: Callable[[Aggregator], Awaitable[Any]]) -> Any:
    cache = TTLCache(sweep_interval=settings.cache_sweep_interval)
    async with cache, GitHubClient.from_settings(settings) as client:
        if not client.authenticated:
            logger.info("GITHUB_TOKEN not set, using anonymous rate limit")
        return await operation(Aggregator(source=client, cache=cache))


def _execute(operation: Callable[[Aggregator], Awaitable[Any]]) -> Any:
    """Run one aggregator operation with a fresh client and cache."""
    return _run_async(_with_aggregator(operation))


def _resolve_owner(args: argparse.Namespace) -> str | None:
    owner = args.owner or settings.github_owner
    if not owner:
        print("Error: no owner given (use --owner or set GITHUB_OWNER)", file=sys.stderr)
    return owner


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _guarded(handler: Callable[[argparse.Namespace], int]) -> Callable[[argparse.Namespace], int]:
    """Map anything escaping a command to a generic failure exit code."""
    @functools.wraps(handler)
    def wrapper(args: argparse.Namespace) -> int:
        try:
            return handler(args)
        except KeyboardInterrupt:
            logger.warning("Interrupted by user")
            return EXIT_INTERRUPTED
        except Exception as e:
            logger.error("Command %s failed: %s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_FAILURE

    return wrapper


@_guarded
def cmd_repos(args: argparse.Namespace) -> int:
    """Execute the repos command.

    Without --enriched prints the lightweight list. With --enriched, forks
    and archived repositories are both excluded unless --include-forks.
    """
    owner = _resolve_owner(args)
    if not owner:
        return EXIT_USAGE

    if args.enriched:
        exclude = not args.include_forks
        repos = _execute(lambda agg: agg.fetch_all_repos_enriched(owner, exclude, exclude))
    else:
        repos = _execute(lambda agg: agg.list_repositories(owner, include_forks=args.include_forks))

    _print_json([repo.to_dict() for repo in repos])
    return EXIT_OK


@_guarded
def cmd_details(args: argparse.Namespace) -> int:
    """Execute the details command."""
    owner = _resolve_owner(args)
    if not owner:
        return EXIT_USAGE

    details = _execute(lambda agg: agg.fetch_repo_details(owner, args.name))
    if details is None:
        print(f"Error: repository {owner}/{args.name} not found", file=sys.stderr)
        return EXIT_NOT_FOUND

    _print_json(details.to_dict())
    return EXIT_OK


@_guarded
def cmd_portfolio(args: argparse.Namespace) -> int:
    """Execute the portfolio command."""
    owner = _resolve_owner(args)
    if not owner:
        return EXIT_USAGE

    metrics = _execute(lambda agg: agg.portfolio_metrics(owner))
    _print_json(metrics.to_dict())
    return EXIT_OK


@_guarded
def cmd_tree(args: argparse.Namespace) -> int:
    """Execute the tree command."""
    owner = _resolve_owner(args)
    if not owner:
        return EXIT_USAGE

    tree = _execute(
        lambda agg: agg.fetch_repo_tree(owner, args.name, path=args.path, recursive=args.recursive)
    )
    if tree is None:
        print(f"Error: failed to fetch tree of {owner}/{args.name}", file=sys.stderr)
        return EXIT_FAILURE

    _print_json({
        "sha": tree.sha,
        "tree": [node.to_dict() for node in tree.tree],
        "truncated": tree.truncated,
    })
    return EXIT_OK


@_guarded
def cmd_file(args: argparse.Namespace) -> int:
    """Execute the file command."""
    owner = _resolve_owner(args)
    if not owner:
        return EXIT_USAGE

    if not args.path.strip("/"):
        print("Error: path is required", file=sys.stderr)
        return EXIT_USAGE

    content = _execute(lambda agg: agg.fetch_file_content(owner, args.name, args.path))
    if content is None:
        print(f"Error: file {args.path} not found in {owner}/{args.name}", file=sys.stderr)
        return EXIT_NOT_FOUND

    _print_json({"path": args.path, "content": content})
    return EXIT_OK


def cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    print(f"repointel v{__version__}")
    print("GitHub repository intelligence")
    return EXIT_OK


_COMMANDS: dict[str, Callable[[argparse.Namespace], int]] = {
    "repos": cmd_repos,
    "details": cmd_details,
    "portfolio": cmd_portfolio,
    "tree": cmd_tree,
    "file": cmd_file,
    "version": cmd_version,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    parser = create_parser()
    args = parser.parse_args(argv)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        # No command specified
        parser.print_help()
        return EXIT_OK
    return handler(args)


def cli_entry() -> None:
    """Console script entry point for setuptools."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
