# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""Command-line interface for Murmur privacy gate operations."""

from __future__ import annotations

import argparse
import os
import sys

from ..core.exceptions import MurmurException
from ..privacy.orgs import InMemoryOrgRegistry, generate_org_salt
from ..privacy.pseudonym import Pseudonymizer


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP server."""
    if args.host:
        os.environ["MURMUR_HOST"] = args.host
    if args.port:
        os.environ["MURMUR_PORT"] = str(args.port)

    from .app import run
    from .config import clear_settings_cache

    clear_settings_cache()
    run()
    return 0


def cmd_salt(args: argparse.Namespace) -> int:
    """Print a fresh org salt."""
    print(generate_org_salt())
    return 0


def cmd_handle(args: argparse.Namespace) -> int:
    """Print the pseudonymous handle an identity gets today."""
    registry = InMemoryOrgRegistry()
    try:
        registry.register(args.org_id, salt=args.salt)
        handle = Pseudonymizer(registry).handle_for(args.org_id, args.identity)
    except MurmurException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    print(handle)
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Murmur privacy gate CLI",
        prog="murmur",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", help="Bind address (default: MURMUR_HOST or 127.0.0.1)")
    serve_parser.add_argument("--port", "-p", type=int, help="Port (default: MURMUR_PORT or 8430)")

    # Salt command
    subparsers.add_parser("salt", help="Generate a new org salt")

    # Handle command
    handle_parser = subparsers.add_parser("handle", help="Derive today's handle for an identity")
    handle_parser.add_argument("--org-id", "-o", required=True, help="Org identifier")
    handle_parser.add_argument("--salt", "-s", required=True, help="Org salt")
    handle_parser.add_argument("identity", help="Raw submitter identity")

    args = parser.parse_args()

    if args.command == "serve":
        return cmd_serve(args)
    elif args.command == "salt":
        return cmd_salt(args)
    elif args.command == "handle":
        return cmd_handle(args)

    return 1


if __name__ == "__main__":
    sys.exit(main())
