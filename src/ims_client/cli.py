"""CLI entrypoint for the inventory client."""

import argparse
import asyncio
import getpass
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from ims_client.api.client import ApiClient
from ims_client.api.errors import ApiError
from ims_client.api.resources import RESOURCES, get_resource, searchable_resources
from ims_client.config.loader import get_session_path, load_config
from ims_client.listing.controller import FetchState, PaginatedFetchController
from ims_client.listing.query import ASC, DESC
from ims_client.notify import Notifier
from ims_client.search.combobox import SearchCombobox
from ims_client.session import AuthSession
from ims_client.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def _load(args: argparse.Namespace) -> tuple:
    config = load_config(Path(args.config) if args.config else None)
    session = AuthSession.load(get_session_path(config))
    return config, session


def _parse_filters(pairs: Optional[List[str]]) -> Dict[str, str]:
    filters: Dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise ValueError(f"Invalid --filter '{pair}', expected name=value")
        filters[name.strip()] = value.strip()
    return filters


def _parse_ids(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def cmd_login(args: argparse.Namespace) -> None:
    """Log in and persist the session."""
    config, session = _load(args)
    client = ApiClient.from_config(config, session)
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    try:
        result = client.login(args.username, password)
    except ApiError as e:
        logger.error(f"Login failed: {e}")
        print(f"Error: login failed ({e.message})")
        return
    print(f"Logged in as {result.user.username} ({result.user.role})")


def cmd_logout(args: argparse.Namespace) -> None:
    """Clear the persisted session."""
    _config, session = _load(args)
    if not session.is_authenticated:
        print("Not logged in.")
        return
    session.logout()
    print("Logged out.")


def cmd_resources(args: argparse.Namespace) -> None:
    """List known resources."""
    print(f"{'Resource':<20} {'Path':<22} {'Search':<8} {'Default filters':<40}")
    print("-" * 90)
    for spec in RESOURCES.values():
        filters = ", ".join(f"{k}={v}" for k, v in spec.default_filters.items())
        searchable = "Yes" if spec.searchable else "No"
        print(f"{spec.key:<20} {spec.path:<22} {searchable:<8} {filters:<40}")


async def _list(args: argparse.Namespace, config: Dict[str, Any], session: AuthSession) -> PaginatedFetchController:
    resource = get_resource(args.resource)
    client = ApiClient.from_config(config, session)
    overrides: Dict[str, Any] = {
        "default_filters": {**resource.default_filters, **_parse_filters(args.filter)},
        "exclude_ids": _parse_ids(args.exclude_ids),
        "notifier": Notifier(),
    }
    if args.limit is not None:
        overrides["default_page_size"] = args.limit
    if args.sort:
        overrides["sort_by"] = args.sort
        overrides["sort_order"] = DESC if args.desc else ASC

    controller = PaginatedFetchController.for_resource(client, session, resource, config, **overrides)
    controller.query.search = args.search or ""
    controller.query.page = args.page
    controller.start()
    await controller.settled()
    return controller


def cmd_list(args: argparse.Namespace) -> None:
    """Fetch one page of a resource."""
    config, session = _load(args)
    if not session.is_authenticated:
        print("Error: not logged in. Run 'ims-client login' first.")
        return

    page_sizes = config["listing"]["page_sizes"]
    if args.limit is not None and args.limit not in page_sizes:
        print(f"Error: --limit must be one of {page_sizes}")
        return
    if args.page < 1:
        print("Error: --page must be >= 1")
        return

    controller = asyncio.run(_list(args, config, session))
    if controller.state is FetchState.ERRORED:
        for message in controller.notifier.errors():
            print(f"Error: {message}")
        return

    pagination = controller.pagination
    if args.format == "json":
        print(json.dumps({"data": controller.items, "pagination": pagination.to_wire()}, indent=2, default=str))
        return

    resource = get_resource(args.resource)
    if not controller.items:
        print(f"No {resource.plural} found.")
    else:
        print(f"{'ID':<10} {'Label':<60}")
        print("-" * 72)
        for item in controller.items:
            print(f"{str(item.get('id', '')):<10} {resource.label(item):<60}")
    print(
        f"\nPage {pagination.current_page} of {pagination.total_pages} "
        f"({pagination.total_items} total, {pagination.items_per_page} per page)"
    )
    hints = []
    if pagination.has_previous:
        hints.append(f"previous: --page {pagination.current_page - 1}")
    if pagination.has_next:
        hints.append(f"next: --page {pagination.current_page + 1}")
    if hints:
        print(f"({', '.join(hints)})")


async def _search(args: argparse.Namespace, config: Dict[str, Any], session: AuthSession) -> SearchCombobox:
    resource = get_resource(args.resource)
    if not resource.searchable:
        raise ValueError(f"Resource '{resource.key}' has no search picker")
    client = ApiClient.from_config(config, session)
    overrides: Dict[str, Any] = {"notifier": Notifier()}
    if args.limit is not None:
        overrides["limit"] = args.limit
    combobox = SearchCombobox.for_resource(client, resource, config, **overrides)
    combobox.open()
    if args.query:
        combobox.set_query(args.query)
    await combobox.settled()
    return combobox


def cmd_search(args: argparse.Namespace) -> None:
    """Look up entities the way a picker does."""
    config, session = _load(args)
    combobox = asyncio.run(_search(args, config, session))
    errors = combobox.notifier.errors()
    if errors:
        for message in errors:
            print(f"Error: {message}")
        return
    if combobox.is_empty:
        print(f"No {combobox.resource.singular} found.")
        return
    for entity in combobox.results:
        print(f"{str(entity.get('id', '')):<10} {combobox.resource.label(entity)}")


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(description="Inventory management client")
    parser.add_argument("--config", type=str, help="Path to config YAML (default: ims.config.yaml)")
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    login_parser = subparsers.add_parser("login", help="Log in and store the session token")
    login_parser.add_argument("--username", type=str, required=True, help="Username")
    login_parser.add_argument("--password", type=str, help="Password (prompted when omitted)")
    login_parser.set_defaults(func=cmd_login)

    logout_parser = subparsers.add_parser("logout", help="Forget the stored session")
    logout_parser.set_defaults(func=cmd_logout)

    resources_parser = subparsers.add_parser("resources", help="List known resources")
    resources_parser.set_defaults(func=cmd_resources)

    list_parser = subparsers.add_parser("list", help="Fetch one page of a resource")
    list_parser.add_argument("resource", type=str, choices=sorted(RESOURCES), help="Resource to list")
    list_parser.add_argument("--search", type=str, default="", help="Search term")
    list_parser.add_argument(
        "--filter",
        action="append",
        metavar="NAME=VALUE",
        help="Filter, repeatable (e.g. --filter status=BORROWED)",
    )
    list_parser.add_argument("--sort", type=str, help="Sort key (default from config)")
    list_parser.add_argument("--desc", action="store_true", help="Sort descending (with --sort)")
    list_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    list_parser.add_argument("--limit", type=int, help="Page size (default from config)")
    list_parser.add_argument("--exclude-ids", type=str, help="Comma-separated ids to leave out")
    list_parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    list_parser.set_defaults(func=cmd_list)

    search_parser = subparsers.add_parser("search", help="Search a resource like a picker does")
    search_parser.add_argument(
        "resource",
        type=str,
        choices=sorted(spec.key for spec in searchable_resources()),
        help="Resource to search",
    )
    search_parser.add_argument("query", type=str, nargs="?", default="", help="Search text")
    search_parser.add_argument("--limit", type=int, help="Maximum results (default from config)")
    search_parser.set_defaults(func=cmd_search)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return

    try:
        args.func(args)
    except Exception as e:
        logger.error(f"Error running command '{args.command}': {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
