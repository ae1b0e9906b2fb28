import argparse
import json
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__
from .collaborators import SqlCollaborators
from .database import connect_database, get_session_factory, init_database
from .env import load_env, load_settings
from .logger import get_logger
from .registry import MAINTENANCE_ENTITY_NAMES, build_maintenance_graph
from .resolver import ConflictError, ResolutionTimeout, SelectorResolver
from .retry import RetryError
from .schema import ValidationError, validate_selector


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not an integer")
    if number < 1:
        raise argparse.ArgumentTypeError(f"{value!r} must be at least 1")
    return number


def positive_float(value: str) -> float:
    """argparse type for durations that must be greater than 0."""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not a number")
    if not number > 0:
        raise argparse.ArgumentTypeError(f"{value!r} must be greater than 0")
    return number


def parse_select_args(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn ["equipment=7", ...] into {"equipment": "7", ...}."""
    selector: Dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise SystemExit(f"Invalid --select value {pair!r}, expected <entity-type>=<id>")
        selector[name.strip()] = value.strip()
    return selector


def load_selector(args: argparse.Namespace) -> dict:
    selector: dict = {}
    if getattr(args, "input", None):
        input_path = Path(args.input)
        if not input_path.exists():
            raise SystemExit(f"Input file not found: {input_path}")
        with input_path.open("r", encoding="utf-8") as f:
            selector = json.load(f)
        if not isinstance(selector, dict):
            raise SystemExit("Input file must hold a JSON object of entity type to id")
    selector.update(parse_select_args(args.select))
    return selector


def cmd_init_db(args: argparse.Namespace) -> None:
    db_path = Path(args.db)
    init_database(db_path)
    print(f"Database ready: {db_path}")


def cmd_floors(args: argparse.Namespace) -> None:
    graph = build_maintenance_graph(SqlCollaborators(get_session_factory(Path(args.db))))
    for floor, names in graph.describe():
        print(f"Floor {floor}")
        for name in names:
            parents = graph.parents_of(name)
            suffix = f" (parents: {', '.join(parents)})" if parents else ""
            print(f"  - {name}{suffix}")


def cmd_validate(args: argparse.Namespace) -> None:
    errors = validate_selector(load_selector(args), MAINTENANCE_ENTITY_NAMES)
    if errors:
        print("Invalid:")
        for e in errors:
            print(f" - {e}")
        raise SystemExit(2)
    print("Valid")


def cmd_resolve(args: argparse.Namespace) -> None:
    settings = load_settings()
    logger = get_logger(
        level=settings.log_level,
        log_dir=settings.log_dir,
        enable_console=args.verbose,
    )
    selector = load_selector(args)

    db_path = Path(args.db) if args.db else settings.db_path
    if not db_path.exists():
        raise SystemExit(f"Database not found: {db_path}. Run 'comaint init-db' first.")
    try:
        session_factory = connect_database(
            db_path,
            max_retries=settings.db_max_retries,
            logger=logger,
        )
    except RetryError as e:
        raise SystemExit(f"Database unavailable: {e}")

    graph = build_maintenance_graph(SqlCollaborators(session_factory))
    resolver = SelectorResolver(
        graph,
        logger=logger,
        max_workers=args.workers if args.workers is not None else settings.max_workers,
        strict_consistency=args.strict,
    )
    timeout = args.timeout if args.timeout is not None else settings.resolve_timeout

    try:
        entries = resolver.resolve(selector, timeout=timeout)
    except ValidationError as e:
        print(f"Invalid: {e.message}")
        raise SystemExit(2)
    except ConflictError as e:
        print(f"Conflict: {e}")
        raise SystemExit(3)
    except ResolutionTimeout as e:
        print(f"Timeout: {e}")
        raise SystemExit(4)

    print(json.dumps([entry.to_dict() for entry in entries], indent=2))


def main(argv: Optional[List[str]] = None):
    load_env()
    parser = argparse.ArgumentParser(prog="comaint", description="Comaint selector resolution")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create the maintenance tables")
    ini.add_argument("--db", default="data/comaint.db", help="Path to SQLite database (default: data/comaint.db)")
    ini.set_defaults(func=cmd_init_db)

    flr = subparsers.add_parser("floors", help="Print the entity types of each floor")
    flr.add_argument("--db", default="data/comaint.db", help="Path to SQLite database (default: data/comaint.db)")
    flr.set_defaults(func=cmd_floors)

    val = subparsers.add_parser("validate", help="Validate a selector request")
    val.add_argument("--select", action="append", help="Known id as <entity-type>=<id>, repeatable")
    val.add_argument("--input", help="Path to a JSON object of entity type to id")
    val.set_defaults(func=cmd_validate)

    res = subparsers.add_parser("resolve", help="Resolve a selector request and print the entries as JSON")
    res.add_argument("--select", action="append", help="Known id as <entity-type>=<id>, repeatable")
    res.add_argument("--input", help="Path to a JSON object of entity type to id")
    res.add_argument("--db", help="Path to SQLite database (default: COMAINT_DB_PATH or data/comaint.db)")
    res.add_argument("--workers", type=positive_int, help="Concurrent collaborator calls per floor")
    res.add_argument("--timeout", type=positive_float, help="Resolution deadline in seconds")
    res.add_argument("--strict", action="store_true", help="Reject supplied ids that disagree with derived ones")
    res.add_argument("--verbose", action="store_true", help="Also log to the console")
    res.set_defaults(func=cmd_resolve)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
