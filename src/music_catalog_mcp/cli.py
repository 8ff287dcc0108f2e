"""Command line entry point: music-catalog-mcp [serve|generate-token|authorize|status]."""

import argparse
import json
import sys

from . import auth


def _generate_token(args) -> int:
    try:
        auth.generate_developer_token(args.days)
    except (FileNotFoundError, KeyError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"✓ Developer token saved (valid {min(args.days, 180)} days)")
    return 0


def _authorize(args) -> int:
    try:
        token = auth.run_auth_server(args.port)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0 if token else 1


def _status(args) -> int:
    from .server import check_auth_status

    print(check_auth_status())
    return 0


def _serve(args) -> int:
    from .server import main as run_server

    run_server(args.log_level)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="music-catalog-mcp",
        description="Apple Music catalog resolution and playlist sync MCP server",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the MCP server on stdio (default)")
    serve.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    serve.set_defaults(func=_serve)

    gen = sub.add_parser("generate-token", help="Sign a developer token from config.json")
    gen.add_argument("--days", type=int, default=180, help="Validity in days (max 180)")
    gen.set_defaults(func=_generate_token)

    authz = sub.add_parser("authorize", help="Authorize in the browser and save a Music User Token")
    authz.add_argument("--port", type=int, default=8765)
    authz.set_defaults(func=_authorize)

    status = sub.add_parser("status", help="Show credential and API status")
    status.set_defaults(func=_status)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args(["serve"] + (argv or []))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
