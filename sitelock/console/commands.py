import argparse
import json
import sys
from typing import Callable, TextIO

from dotenv import load_dotenv

from sitelock.config import load_settings
from sitelock.maintenance.controller import InvalidInputError, LockController, parse_ttl
from sitelock.maintenance.messages import message
from sitelock.observability.logging import setup_logging
from sitelock.storage.base import LockStore, StoreUnavailableError
from sitelock.storage.factory import get_lock_store

ROUTES_FORMATS = ("list", "csv", "json")


def _ttl_argument(value: str) -> int | None:
    try:
        return parse_ttl(value)
    except InvalidInputError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sitelock", description="Lock or unlock the site for maintenance.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    lock = subparsers.add_parser("lock", help="Lock access to the site while maintenance runs.")
    lock.add_argument(
        "ttl",
        nargs="?",
        type=_ttl_argument,
        default=None,
        help="Override the configured time to live, in seconds.",
    )
    lock.add_argument("-r", "--routes", action="append", default=[], help="Route name allowed during maintenance.")
    lock.add_argument("--routes-format", choices=ROUTES_FORMATS, default="list")
    lock.add_argument("-n", "--no-interaction", action="store_true", help="Do not ask any question.")

    unlock = subparsers.add_parser("unlock", help="Unlock access to the site.")
    unlock.add_argument("-n", "--no-interaction", action="store_true", help="Do not ask any question.")

    subparsers.add_parser("status", help="Show the current maintenance state.")
    return parser


def parse_routes(values: list[str], routes_format: str) -> list[str]:
    if routes_format == "list":
        return list(values)
    routes: list[str] = []
    for value in values:
        if routes_format == "csv":
            routes.extend(item.strip() for item in value.split(",") if item.strip())
            continue
        try:
            parsed = json.loads(value)
        except ValueError as exc:
            raise InvalidInputError("Routes must be a JSON array of strings") from exc
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise InvalidInputError("Routes must be a JSON array of strings")
        routes.extend(parsed)
    return routes


def _confirm(input_fn: Callable[[str], str], out: TextIO) -> bool:
    answer = input_fn(f"{message('confirm')} ")
    if answer.strip().lower() in {"y", "yes"}:
        return True
    print(message("maintenance_cancelled"), file=out)
    return False


def _ask_ttl(store: LockStore, input_fn: Callable[[str], str], out: TextIO) -> int | None:
    default = store.default_ttl if store.default_ttl is not None else "unlimited"
    print("Do you want to redefine maintenance life time?", file=out)
    print("If yes enter the number of seconds. Press enter to continue.", file=out)
    return parse_ttl(input_fn(f"Set time [Default value in your configuration: {default}]: "))


def run_lock(args: argparse.Namespace, store: LockStore, input_fn: Callable[[str], str], out: TextIO) -> int:
    controller = LockController(store)
    routes = parse_routes(args.routes, args.routes_format)
    interactive_ttl = None

    if not args.no_interaction:
        print("You are about to launch maintenance", file=out)
        if store.has_ttl_support() and args.ttl is None:
            interactive_ttl = _ask_ttl(store, input_fn, out)
        if not _confirm(input_fn, out):
            return 0

    outcome = controller.lock(ttl_override=args.ttl, routes=routes, interactive_ttl=interactive_ttl)
    for notice in outcome.notices:
        print(notice, file=out)
    print(outcome.message, file=out)
    return 0 if outcome.success else 1


def run_unlock(args: argparse.Namespace, store: LockStore, input_fn: Callable[[str], str], out: TextIO) -> int:
    if not args.no_interaction and not _confirm(input_fn, out):
        return 0
    outcome = LockController(store).unlock()
    print(outcome.message, file=out)
    return 1 if outcome.error else 0


def run_status(store: LockStore, out: TextIO) -> int:
    record = LockController(store).status()
    if record is None:
        print("Maintenance: off", file=out)
        return 0
    remaining = store.ttl_policy.remaining(record.locked_at, record.ttl_seconds)
    print("Maintenance: on", file=out)
    print(f"Expires in: {'never' if remaining is None else f'{remaining}s'}", file=out)
    if record.allowed_routes:
        print(f"Allowed routes: {', '.join(record.allowed_routes)}", file=out)
    return 0


def main(
    argv: list[str] | None = None,
    *,
    store: LockStore | None = None,
    input_fn: Callable[[str], str] = input,
    out: TextIO | None = None,
) -> int:
    out = out or sys.stdout
    args = build_parser().parse_args(argv)
    if store is None:
        load_dotenv()
        setup_logging()
        store = get_lock_store(load_settings())

    try:
        if args.command == "lock":
            return run_lock(args, store, input_fn, out)
        if args.command == "unlock":
            return run_unlock(args, store, input_fn, out)
        return run_status(store, out)
    except InvalidInputError as exc:
        print(f"Error: {exc}", file=out)
        return 2
    except StoreUnavailableError as exc:
        print(f"Error: {exc}", file=out)
        return 1
