"""CLI entry point for http-oneshot.

Builds a RequestSpec from arguments, executes it once, and prints the response.

Exit codes:
    0: Response received (any HTTP status)
    1: Request failed (timeout, connection, transfer, encoding)
    2: Invalid arguments or configuration
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from http_oneshot.config_loader import ConfigError, build_executor, load_client_config
from http_oneshot.models import (
    ClientConfig,
    NoBody,
    RequestSpec,
    ResponseResult,
    StreamBody,
    StructuredBody,
    TextBody,
)

EXIT_OK = 0
EXIT_REQUEST_FAILED = 1
EXIT_USAGE = 2


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


def parse_header(value: str) -> tuple[str, str]:
    """Parse 'Name: value' format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if ":" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected 'Name: value' (e.g., 'Accept: text/plain')"
        )
    name, _, header_value = value.partition(":")
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"Invalid header '{value}'. Name cannot be empty.")
    return (name, header_value.strip())


def parse_json_value(value: str) -> Any:
    """Parse a JSON document given on the command line.

    Raises:
        argparse.ArgumentTypeError: If value is not valid JSON.
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON: {e}")


@dataclass
class RequestArgs:
    """Parsed arguments for one request."""

    uri: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    data: str | None = None
    json_value: Any = None
    has_json: bool = False
    data_file: Path | None = None
    timeout: float | None = None
    connect_timeout: float | None = None
    config: Path | None = None
    include: bool = False
    verbose: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="http-oneshot",
        description="Send one HTTP request with separate connect and request timeouts.",
    )
    parser.add_argument("uri", help="Absolute http(s) URL")
    parser.add_argument(
        "-X",
        "--method",
        default="GET",
        help="HTTP method, sent verbatim (default: GET)",
    )
    parser.add_argument(
        "-H",
        "--header",
        type=parse_header,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        dest="headers",
        help="Request header (can be repeated)",
    )

    body_group = parser.add_mutually_exclusive_group()
    body_group.add_argument("-d", "--data", help="Send text as the request body")
    body_group.add_argument(
        "--json",
        type=parse_json_value,
        dest="json_value",
        default=argparse.SUPPRESS,
        metavar="JSON",
        help="Send a JSON value as the request body",
    )
    body_group.add_argument(
        "--data-file",
        type=Path,
        metavar="PATH",
        help="Stream a file as the request body ('-' for stdin)",
    )

    parser.add_argument(
        "--timeout",
        type=positive_float,
        help="Seconds allowed after connecting (default: unbounded or config value)",
    )
    parser.add_argument(
        "--connect-timeout",
        type=float,
        help="Seconds allowed to connect (default: 1.0 or config value; 0 disables)",
    )
    parser.add_argument("--config", type=Path, help="YAML client configuration file")
    parser.add_argument(
        "-i",
        "--include",
        action="store_true",
        help="Print the status line and response headers",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def parse_args(args: list[str] | None = None) -> RequestArgs:
    """Parse command-line arguments.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    namespace = build_parser().parse_args(args)
    headers: dict[str, str] = {}
    for name, value in namespace.headers:
        headers[name] = value
    return RequestArgs(
        uri=namespace.uri,
        method=namespace.method,
        headers=headers,
        data=namespace.data,
        json_value=getattr(namespace, "json_value", None),
        # --json null is a valid body, so presence is tracked separately
        has_json=hasattr(namespace, "json_value"),
        data_file=namespace.data_file,
        timeout=namespace.timeout,
        connect_timeout=namespace.connect_timeout,
        config=namespace.config,
        include=namespace.include,
        verbose=namespace.verbose,
    )


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parsed = parse_args(args)

    if parsed.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        return run_request(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return EXIT_REQUEST_FAILED


def run_request(args: RequestArgs) -> int:
    """Execute the request described by args and print the outcome."""
    try:
        config = load_client_config(args.config) if args.config else ClientConfig()
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return EXIT_USAGE

    with ExitStack() as stack:
        try:
            body = _build_body(args, stack)
        except OSError as e:
            print(f"Error reading body: {e}", file=sys.stderr)
            return EXIT_USAGE

        try:
            spec = RequestSpec(
                method=args.method,
                uri=args.uri,
                headers=args.headers,
                body=body,
                timeout=args.timeout,
            )
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_USAGE

        executor = stack.enter_context(build_executor(config))
        if args.connect_timeout is not None:
            executor.timeouts.set_connect_timeout(args.connect_timeout)

        result, error = executor.do(spec)

    if error is not None:
        print(f"Error: {error}", file=sys.stderr)
        return EXIT_REQUEST_FAILED

    _print_result(result, args.include)
    return EXIT_OK


def _build_body(
    args: RequestArgs,
    stack: ExitStack,
) -> NoBody | TextBody | StreamBody | StructuredBody:
    """Pick the payload variant from the body options (at most one is set)."""
    if args.data is not None:
        return TextBody(text=args.data)
    if args.has_json:
        return StructuredBody(value=args.json_value)
    if args.data_file is not None:
        if str(args.data_file) == "-":
            return StreamBody(source=sys.stdin.buffer)
        f = stack.enter_context(open(args.data_file, "rb"))
        return StreamBody(source=f, length=args.data_file.stat().st_size)
    return NoBody()


def _print_result(result: ResponseResult, include: bool) -> None:
    if include:
        print(f"{result.http_version} {result.status_code}")
        for name, value in result.headers:
            print(f"{name}: {value}")
        print()
    sys.stdout.write(result.body)
    if result.body and not result.body.endswith("\n"):
        sys.stdout.write("\n")
    sys.stdout.flush()


if __name__ == "__main__":
    sys.exit(main())
