"""CLI entry point for gh-request.

Handles argument parsing and dispatches to request, graphql or rate-limit mode.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ghrequest.config_loader import ConfigError, apply_overrides, load_engine_config
from ghrequest.errors import EngineError
from ghrequest.executor import Executor
from ghrequest.github import GitHubClient
from ghrequest.models import CallDescriptor, EngineConfig
from ghrequest.request_builder import ALLOWED_METHODS


DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def non_negative_int(value: str) -> int:
    """Parse and validate a non-negative integer value.

    Raises:
        argparse.ArgumentTypeError: If value is not an integer >= 0.
    """
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.")
    if result < 0:
        raise argparse.ArgumentTypeError(f"Value must not be negative, got {result}.")
    return result


def parse_key_value(value: str) -> tuple[str, str]:
    """Parse KEY=VALUE format. The value may be empty or contain '='.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if "=" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid format '{value}'. Expected KEY=VALUE (e.g., 'state=open')"
        )
    key, _, val = value.partition("=")
    if not key:
        raise argparse.ArgumentTypeError(f"Invalid format '{value}'. Key cannot be empty.")
    return (key, val)


def parse_json_body(value: str) -> Any:
    """Parse a JSON request body.

    Raises:
        argparse.ArgumentTypeError: If value is not valid JSON.
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON body: {e}")


def parse_variable_value(value: str) -> Any:
    """GraphQL variable values are JSON when they parse as JSON, else plain strings."""
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


@dataclass
class CommonArgs:
    """Options shared by every subcommand."""

    config: Path | None = None
    base_url: str | None = None
    token_env: str = DEFAULT_TOKEN_ENV
    timeout: float | None = None
    max_retries: int | None = None
    verbose: bool = False


@dataclass
class RequestArgs:
    """Parsed arguments for request mode."""

    method: str
    path: str
    query: list[tuple[str, str]]
    body: Any
    accept: str | None
    paginate: bool
    common: CommonArgs = field(default_factory=CommonArgs)


@dataclass
class GraphQLArgs:
    """Parsed arguments for graphql mode."""

    query_file: Path
    variables: dict[str, Any]
    common: CommonArgs = field(default_factory=CommonArgs)


@dataclass
class RateLimitArgs:
    """Parsed arguments for rate-limit mode."""

    common: CommonArgs = field(default_factory=CommonArgs)


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML engine configuration",
    )
    common.add_argument(
        "--base-url",
        default=None,
        help="REST API root (default: https://api.github.com)",
    )
    common.add_argument(
        "--token-env",
        default=DEFAULT_TOKEN_ENV,
        metavar="VAR",
        help=f"Environment variable holding the bearer token (default: {DEFAULT_TOKEN_ENV})",
    )
    common.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help="Per round trip timeout in seconds",
    )
    common.add_argument(
        "--max-retries",
        type=non_negative_int,
        default=None,
        help="Retries for throttled, server and network failures",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log requests and retries to stderr",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with request, graphql and rate-limit subcommands."""
    parser = argparse.ArgumentParser(
        prog="gh-request",
        description="Send paginated, retrying requests to the GitHub REST and GraphQL APIs.",
    )
    common = _common_parser()

    subparsers = parser.add_subparsers(dest="command", required=True, help="Execution mode")

    # Request subcommand
    request_parser = subparsers.add_parser(
        "request",
        parents=[common],
        help="Send a REST request and print the JSON result",
    )
    request_parser.add_argument(
        "method",
        type=str.upper,
        choices=ALLOWED_METHODS,
        help="HTTP method",
    )
    request_parser.add_argument(
        "path",
        help="API path, e.g. /repos/OWNER/REPO/issues",
    )
    request_parser.add_argument(
        "-q",
        "--query",
        type=parse_key_value,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter (can be repeated)",
    )
    request_parser.add_argument(
        "--body",
        type=parse_json_body,
        default=None,
        help="JSON request body",
    )
    request_parser.add_argument(
        "--accept",
        default=None,
        help="Accept media type override",
    )
    request_parser.add_argument(
        "--paginate",
        action="store_true",
        help="Follow Link rel=\"next\" and print one JSON line per item",
    )

    # GraphQL subcommand
    graphql_parser = subparsers.add_parser(
        "graphql",
        parents=[common],
        help="Run a GraphQL query and print its data",
    )
    graphql_parser.add_argument(
        "--query-file",
        type=Path,
        required=True,
        help="File containing the GraphQL document",
    )
    graphql_parser.add_argument(
        "--var",
        type=parse_key_value,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        dest="variables",
        help="GraphQL variable; JSON values are decoded (can be repeated)",
    )

    # Rate-limit subcommand
    subparsers.add_parser(
        "rate-limit",
        parents=[common],
        help="Show the current rate-limit budget",
    )

    return parser


def parse_common_args(namespace: argparse.Namespace) -> CommonArgs:
    """Extract the shared options from a parsed namespace."""
    return CommonArgs(
        config=namespace.config,
        base_url=namespace.base_url,
        token_env=namespace.token_env,
        timeout=namespace.timeout,
        max_retries=namespace.max_retries,
        verbose=namespace.verbose,
    )


def parse_request_args(namespace: argparse.Namespace) -> RequestArgs:
    """Convert parsed namespace to RequestArgs dataclass."""
    return RequestArgs(
        method=namespace.method,
        path=namespace.path,
        query=namespace.query or [],
        body=namespace.body,
        accept=namespace.accept,
        paginate=namespace.paginate,
        common=parse_common_args(namespace),
    )


def parse_graphql_args(namespace: argparse.Namespace) -> GraphQLArgs:
    """Convert parsed namespace to GraphQLArgs dataclass."""
    variables = {key: parse_variable_value(value) for key, value in namespace.variables or []}
    return GraphQLArgs(
        query_file=namespace.query_file,
        variables=variables,
        common=parse_common_args(namespace),
    )


def parse_args(args: list[str] | None = None) -> RequestArgs | GraphQLArgs | RateLimitArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "request":
        return parse_request_args(namespace)
    elif namespace.command == "graphql":
        return parse_graphql_args(namespace)
    elif namespace.command == "rate-limit":
        return RateLimitArgs(common=parse_common_args(namespace))
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def build_config(common: CommonArgs) -> EngineConfig:
    """Load config from file (if any), then apply command-line overrides.

    The token comes from the config file first, then from ``--token-env``.
    """
    config = load_engine_config(common.config) if common.config else EngineConfig()
    token = None if config.token else os.environ.get(common.token_env) or None
    return apply_overrides(
        config,
        base_url=common.base_url,
        timeout=common.timeout,
        max_retries=common.max_retries,
        token=token,
    )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    # Transport internals drown out the engine's own request log.
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(argv)
        configure_logging(parsed.common.verbose)

        if isinstance(parsed, RequestArgs):
            return run_request(parsed)
        elif isinstance(parsed, GraphQLArgs):
            return run_graphql(parsed)
        else:
            return run_rate_limit(parsed)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_request(args: RequestArgs) -> int:
    """Run request mode.

    Paginated output is one compact JSON document per line; single results
    are pretty-printed.
    """
    try:
        config = build_config(args.common)
        descriptor = CallDescriptor(
            method=args.method,
            path=args.path,
            query=args.query,
            body=args.body,
            accept=args.accept,
        )
        with Executor(config) as executor:
            if args.paginate:
                for record in executor.paginate(descriptor):
                    print(json.dumps(record.data))
            else:
                record = executor.invoke(descriptor)
                if record is not None:
                    print(json.dumps(record.data, indent=2))
    except (ConfigError, EngineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def run_graphql(args: GraphQLArgs) -> int:
    """Run graphql mode."""
    try:
        query = args.query_file.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error reading query file: {e}", file=sys.stderr)
        return 1

    try:
        config = build_config(args.common)
        with Executor(config) as executor:
            data = executor.graphql(query, args.variables)
    except (ConfigError, EngineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(data, indent=2))
    return 0


def run_rate_limit(args: RateLimitArgs) -> int:
    """Run rate-limit mode: print remaining budget per resource."""
    try:
        config = build_config(args.common)
        with Executor(config) as executor:
            record = GitHubClient(executor).get_rate_limit()
    except (ConfigError, EngineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    resources = (record.data or {}).get("resources", {}) if record is not None else {}
    for name in sorted(resources):
        budget = resources[name]
        print(f"{name}: {budget.get('remaining')}/{budget.get('limit')} (resets {budget.get('reset')})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
