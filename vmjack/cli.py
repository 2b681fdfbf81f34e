"""Vmjack CLI: quick server operations from the command line.

Usage examples::

    vmjack --provider gcp --config '{"project_id":"p"}' get web-1
    vmjack -p gcp stop web-1 --kwargs '{"async_": false}'
    vmjack -p gcp set-machine-type web-1 n1-standard-2 -k '{"async_": false}'
    vmjack -p gcp bootstrap -k '{"name": "web-2", "public_key_path": "~/.ssh/id_ed25519.pub"}'
"""

from __future__ import annotations

import argparse
import inspect
import json
import sys
from typing import Any

from pydantic import BaseModel

from vmjack.base.exceptions import VmjackError
from vmjack.disk import Disk
from vmjack.server import Server

# Operations served by the collection itself; everything else is a
# server method and takes the server name as first argument.
COLLECTION_OPERATIONS = ("get", "disk", "bootstrap")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ``vmjack`` CLI.

    Returns:
        Configured :class:`~argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(
        prog="vmjack",
        description="Cloud server lifecycle CLI",
    )
    parser.add_argument(
        "--provider", "-p",
        required=True,
        choices=["gcp"],
        help="Cloud provider",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default="{}",
        help='JSON config string (e.g. \'{"project_id":"my-project"}\')',
    )
    parser.add_argument(
        "operation",
        help="Operation to perform (e.g. get, stop, set-machine-type, bootstrap)",
    )
    parser.add_argument(
        "args",
        nargs="*",
        help="Positional arguments for the operation; server name first",
    )
    parser.add_argument(
        "--kwargs", "-k",
        type=str,
        default="{}",
        help="JSON keyword arguments for the operation",
    )
    return parser


def _render(result: Any) -> str:
    """Turn an operation result into printable text."""
    if isinstance(result, (Server, Disk)):
        result = result.snapshot
    if isinstance(result, BaseModel):
        return json.dumps(result.model_dump(mode="json"), indent=2)
    if isinstance(result, (dict, list)):
        return json.dumps(result, indent=2, default=str)
    return str(result)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parses arguments, creates a server collection via the universal
    factory, and invokes the requested operation.  Results are printed as
    JSON (snapshots, operations, dicts/lists) or plain text.

    Args:
        argv: Optional argument list (defaults to ``sys.argv``).
    """
    parser = _build_parser()
    ns = parser.parse_args(argv)

    try:
        config: dict[str, Any] = json.loads(ns.config)
    except json.JSONDecodeError as e:
        print(f"Invalid --config JSON: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        kwargs: dict[str, Any] = json.loads(ns.kwargs)
    except json.JSONDecodeError as e:
        print(f"Invalid --kwargs JSON: {e}", file=sys.stderr)
        sys.exit(1)

    from vmjack.factory import universal_factory

    try:
        servers = universal_factory(ns.provider, config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    # Convert operation-name to method_name
    method_name = ns.operation.replace("-", "_")
    args = list(ns.args)
    try:
        if method_name in COLLECTION_OPERATIONS:
            target: Any = servers
        else:
            if not args:
                print(f"Operation '{ns.operation}' needs a server name", file=sys.stderr)
                sys.exit(1)
            target = servers.get(args.pop(0))
        method = getattr(target, method_name, None)
        if method_name.startswith("_") or method is None or not callable(method):
            print(f"Unknown operation '{ns.operation}'", file=sys.stderr)
            sys.exit(1)
        try:
            inspect.signature(method).bind(*args, **kwargs)
        except TypeError as e:
            print(f"Invalid arguments for '{ns.operation}': {e}", file=sys.stderr)
            sys.exit(1)
        result = method(*args, **kwargs)
    except VmjackError as e:
        print(f"Operation failed: {e}", file=sys.stderr)
        sys.exit(1)

    # Pretty-print result
    if result is None:
        print("OK")
    else:
        print(_render(result))


if __name__ == "__main__":
    main()
