"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..provider_client import ProviderClient, ProviderError
from ..services import (
    ConnectionLifecycle,
    ConnectionLinkError,
    ConnectionNotFoundError,
    InvalidStatusTransition,
    SyncOrchestrator,
    SyncResult,
    SyncStatus,
    TransactionNotFoundError,
    TransactionReviewService,
)
from ..state_store import StateStore, TransactionStatus

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="renovision-bank",
        description="Link bank connections and synchronize their transactions",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-config", help="Write a default config file")
    subparsers.add_parser("check", help="Check the provider API is reachable")

    # connect-url command
    connect_parser = subparsers.add_parser(
        "connect-url", help="Print the provider page where a user links a bank"
    )
    connect_parser.add_argument("--user", required=True, help="Owner user id")
    connect_parser.add_argument("--project", required=True, help="Owner project id")

    # authorize command
    authorize_parser = subparsers.add_parser(
        "authorize", help="Exchange an authorization code and run the first sync"
    )
    authorize_parser.add_argument("code", help="One-time code from the provider redirect")
    authorize_parser.add_argument("--state", help="State from the provider redirect")
    authorize_parser.add_argument("--user", help="Owner user id (when no --state)")
    authorize_parser.add_argument("--project", help="Owner project id (when no --state)")

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Synchronize bank connections")
    sync_parser.add_argument("connection_id", nargs="?", help="Local connection id")
    sync_parser.add_argument(
        "--all",
        action="store_true",
        help="Sync every active connection",
    )
    sync_parser.add_argument("--project", help="With --all, restrict to one project")
    sync_parser.add_argument(
        "--workers",
        type=int,
        help="Parallel syncs with --all (default: sync.max_workers)",
    )

    # disconnect command
    disconnect_parser = subparsers.add_parser(
        "disconnect", help="Revoke a connection and delete it locally"
    )
    disconnect_parser.add_argument("connection_id", help="Local connection id")

    # connections command
    connections_parser = subparsers.add_parser("connections", help="List linked connections")
    connections_parser.add_argument("--project", help="Filter by project id")

    # transactions command
    transactions_parser = subparsers.add_parser(
        "transactions", help="List a project's transactions with category suggestions"
    )
    transactions_parser.add_argument("--project", required=True, help="Project id")
    transactions_parser.add_argument(
        "--status",
        choices=[s.value for s in TransactionStatus],
        help="Filter by review status",
    )
    transactions_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Page size (default: 50)",
    )
    transactions_parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="Page offset (default: 0)",
    )
    transactions_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the page as JSON",
    )

    # convert command
    convert_parser = subparsers.add_parser(
        "convert", help="Mark a transaction as converted into an expense"
    )
    convert_parser.add_argument("transaction_id", help="Transaction id")
    convert_parser.add_argument("expense_id", help="Expense id")

    # ignore command
    ignore_parser = subparsers.add_parser("ignore", help="Mark a transaction as ignored")
    ignore_parser.add_argument("transaction_id", help="Transaction id")

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Transaction counts per status")
    stats_parser.add_argument("--project", required=True, help="Project id")

    return parser


def _require_valid(config: Config) -> None:
    errors = config.validate()
    if errors:
        raise ConfigValidationError("; ".join(errors))


def _build_orchestrator(config: Config, store: StateStore) -> SyncOrchestrator:
    client = ProviderClient.from_config(config.provider, pool_maxsize=config.sync.max_workers)
    return SyncOrchestrator(client, store, sync_config=config.sync)


def _build_lifecycle(config: Config, store: StateStore) -> ConnectionLifecycle:
    orchestrator = _build_orchestrator(config, store)
    return ConnectionLifecycle(
        orchestrator.client, store, orchestrator, provider_config=config.provider
    )


def _print_sync_result(result: SyncResult) -> None:
    icon = {
        SyncStatus.OK: "✓",
        SyncStatus.TOKEN_EXPIRED: "🔑",
        SyncStatus.ALREADY_SYNCING: "⏳",
    }.get(result.status, "❌")
    print(f"{icon} [{result.connection_id}] {result.message}")
    print(f"  Accounts processed:   {result.accounts_processed}")
    print(f"  Accounts failed:      {result.accounts_failed}")
    print(f"  Transactions written: {result.transactions_written}")
    print(f"  Records rejected:     {result.records_rejected}")
    print(f"  Duration:             {result.duration_ms}ms")
    for error in result.errors:
        print(f"   - {error}")


def cmd_init_config(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"❌ {config_path} already exists")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def cmd_check(config: Config) -> int:
    """Check the provider API is reachable."""
    client = ProviderClient.from_config(config.provider)
    print(f"  → Connecting to provider: {config.provider.base_url}")
    if not client.test_connection():
        print("❌ Failed to reach the provider API")
        print("   Check BANK_PROVIDER_URL")
        return 1
    print("  ✓ Provider API reachable")
    return 0


def cmd_connect_url(config: Config, user_id: str, project_id: str) -> int:
    """Print the bank linking URL."""
    store = StateStore(config.state_db_path)
    lifecycle = _build_lifecycle(config, store)
    print(lifecycle.build_connect_url(user_id, project_id))
    return 0


def cmd_authorize(
    config: Config,
    code: str,
    state: str | None,
    user_id: str | None,
    project_id: str | None,
) -> int:
    """Link a bank connection from an authorization code."""
    store = StateStore(config.state_db_path)
    lifecycle = _build_lifecycle(config, store)

    print("🔗 Linking bank connection...")
    try:
        if state:
            result = lifecycle.authorize_callback(code, state)
        elif user_id and project_id:
            result = lifecycle.authorize(code, user_id, project_id)
        else:
            print("❌ Provide --state, or both --user and --project")
            return 1
    except ValueError as e:
        print(f"❌ {e}")
        return 1
    except (ProviderError, ConnectionLinkError) as e:
        logger.error(f"Authorization failed: {e}")
        print(f"❌ Authorization failed: {e}")
        return 1

    connection = result.connection
    print(f"✓ Linked {connection.bank_label} as connection {connection.id}")
    _print_sync_result(result.sync)
    return 0


def cmd_sync(
    config: Config,
    connection_id: str | None,
    sync_all: bool,
    project_id: str | None,
    workers: int | None,
) -> int:
    """Synchronize one or all connections."""
    store = StateStore(config.state_db_path)
    orchestrator = _build_orchestrator(config, store)

    if sync_all:
        connections = store.list_connections(project_id=project_id, active_only=True)
        if not connections:
            print("⚠️  No active connection to sync")
            return 0
        print(f"🔄 Syncing {len(connections)} connection(s)...")
        results = orchestrator.synchronize_many([c.id for c in connections], workers)
    elif connection_id:
        print(f"🔄 Syncing connection {connection_id}...")
        results = {connection_id: orchestrator.synchronize(connection_id)}
    else:
        print("❌ Give a connection id or --all")
        return 1

    for result in results.values():
        _print_sync_result(result)

    failed = [r for r in results.values() if r.status in (SyncStatus.FAILED, SyncStatus.TOKEN_EXPIRED)]
    return 1 if failed else 0


def cmd_disconnect(config: Config, connection_id: str) -> int:
    """Disconnect a bank connection."""
    store = StateStore(config.state_db_path)
    lifecycle = _build_lifecycle(config, store)
    try:
        result = lifecycle.disconnect(connection_id)
    except ConnectionNotFoundError as e:
        print(f"❌ {e}")
        return 1

    if not result.revoked_upstream:
        print(f"⚠️  Provider revocation failed: {result.error}")
    print(f"✓ Connection {connection_id} disconnected")
    return 0


def cmd_connections(config: Config, project_id: str | None) -> int:
    """List linked connections."""
    store = StateStore(config.state_db_path)
    connections = store.list_connections(project_id=project_id)

    print("\n🏦 Bank connections")
    print("=" * 40)
    for c in connections:
        state = "active" if c.active else "needs reconnection"
        print(f"  [{c.id}] {c.bank_label} (project {c.owner_project_id}) - {state}")
        print(f"      last synced: {c.last_synced_at or 'never'}")
    print(f"\n{len(connections)} connection(s)")
    return 0


def cmd_transactions(
    config: Config,
    project_id: str,
    status: str | None,
    limit: int,
    offset: int,
    as_json: bool,
) -> int:
    """List a project's transactions."""
    store = StateStore(config.state_db_path)
    try:
        page = TransactionReviewService(store).list_transactions(
            project_id, status=status, limit=limit, offset=offset
        )
    except ValueError as e:
        print(f"❌ {e}")
        return 1

    if as_json:
        print(json.dumps(page, indent=2, ensure_ascii=False))
        return 0

    for item in page["items"]:
        sign = "-" if item["direction"] == "DEBIT" else "+"
        suggestion = item["suggestion"]
        print(
            f"  [{item['id']}] {item['occurred_at']} {sign}{item['amount']} "
            f"{item['description']} ({item['status']}, "
            f"{suggestion['category']} {suggestion['confidence']:.0%})"
        )
    print(f"\n{len(page['items'])} of {page['total']} transaction(s)")
    return 0


def cmd_convert(config: Config, transaction_id: str, expense_id: str) -> int:
    """Convert a transaction into an expense."""
    service = TransactionReviewService(StateStore(config.state_db_path))
    try:
        service.convert_to_expense(transaction_id, expense_id)
    except (TransactionNotFoundError, InvalidStatusTransition) as e:
        print(f"❌ {e}")
        return 1
    print(f"✓ Transaction {transaction_id} linked to expense {expense_id}")
    return 0


def cmd_ignore(config: Config, transaction_id: str) -> int:
    """Ignore a transaction."""
    service = TransactionReviewService(StateStore(config.state_db_path))
    try:
        service.ignore(transaction_id)
    except (TransactionNotFoundError, InvalidStatusTransition) as e:
        print(f"❌ {e}")
        return 1
    print(f"✓ Transaction {transaction_id} ignored")
    return 0


def cmd_stats(config: Config, project_id: str) -> int:
    """Show transaction statistics."""
    stats = TransactionReviewService(StateStore(config.state_db_path)).stats(project_id)

    print(f"\n📊 Transactions of project {project_id}")
    print("=" * 40)
    for status, entry in stats.items():
        print(f"  {status:<10} {entry['count']:>6}   {entry['total']}")
    print()
    return 0


# Commands that call the provider and need complete credentials
_PROVIDER_COMMANDS = {"check", "connect-url", "authorize", "sync", "disconnect"}


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
        if parsed.command in _PROVIDER_COMMANDS:
            _require_valid(config)
    except ConfigValidationError as e:
        print(f"❌ Invalid config: {e}")
        return 1
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "check":
        return cmd_check(config)
    elif parsed.command == "connect-url":
        return cmd_connect_url(config, parsed.user, parsed.project)
    elif parsed.command == "authorize":
        return cmd_authorize(config, parsed.code, parsed.state, parsed.user, parsed.project)
    elif parsed.command == "sync":
        return cmd_sync(
            config,
            parsed.connection_id,
            sync_all=parsed.all,
            project_id=parsed.project,
            workers=parsed.workers,
        )
    elif parsed.command == "disconnect":
        return cmd_disconnect(config, parsed.connection_id)
    elif parsed.command == "connections":
        return cmd_connections(config, parsed.project)
    elif parsed.command == "transactions":
        return cmd_transactions(
            config,
            parsed.project,
            parsed.status,
            parsed.limit,
            parsed.offset,
            parsed.json,
        )
    elif parsed.command == "convert":
        return cmd_convert(config, parsed.transaction_id, parsed.expense_id)
    elif parsed.command == "ignore":
        return cmd_ignore(config, parsed.transaction_id)
    elif parsed.command == "stats":
        return cmd_stats(config, parsed.project)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
