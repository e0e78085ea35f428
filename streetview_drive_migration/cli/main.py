"""
Command-line entry point for the Street View to Google Drive migration.
"""
import argparse
import logging
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from streetview_drive_migration.auth import installed_app_credentials
from streetview_drive_migration.catalog.filters import FilterSpec
from streetview_drive_migration.config import MigrationConfig
from streetview_drive_migration.dispatcher import SORT_FIELDS
from streetview_drive_migration.exceptions import MigrationError
from streetview_drive_migration.factory import build_session
from streetview_drive_migration.session import CatalogView
from streetview_drive_migration.transfer.orchestrator import TransferOutcome
from streetview_drive_migration.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)

console = Console()


class TqdmProgressSink:
    """Renders progress diffs as a single overall percentage bar."""

    def __init__(self, bar_factory=tqdm):
        self.bar_factory = bar_factory
        self.bar = None

    def __call__(self, payload: dict) -> None:
        if payload.get('inProgress') and self.bar is None:
            self.bar = self.bar_factory(total=100, desc='Transferring', unit='%')

        if self.bar is not None:
            if 'totalProgress' in payload:
                self.bar.update(payload['totalProgress'] - self.bar.n)
            if payload.get('message'):
                self.bar.set_postfix_str(payload['message'])

        if payload.get('error'):
            tqdm.write(payload['error'])
        if payload.get('complete'):
            self.close()

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None


def print_listing(view: CatalogView, show_counts: bool = False) -> None:
    """Print one listing page as a table."""
    table = Table(title="Street View Photos", show_header=True, header_style="bold magenta")
    table.add_column("Photo ID", style="cyan")
    table.add_column("Place")
    table.add_column("Location")
    table.add_column("Captured")
    table.add_column("Views", justify="right")
    table.add_column("Status")

    for photo in view.page.items:
        pose = photo.pose
        location = (
            f"{pose.latitude:.4f}, {pose.longitude:.4f}" if pose and pose.has_lat_lng else "-"
        )
        transferred = photo.destination_name in view.transferred_names
        table.add_row(
            photo.photo_id,
            photo.place_name or "-",
            location,
            photo.capture_time[:10] if photo.capture_time else "-",
            f"{photo.view_count:,}",
            "[green]transferred[/green]" if transferred else "[red]missing[/red]",
        )

    console.print(table)
    page = view.page
    console.print(
        f"Page {page.page} of {page.total_pages or 1} "
        f"(photos {page.start_index}-{page.end_index} of {page.total_items})"
    )

    if show_counts:
        counts = Table(title="Pose Attributes", show_header=True, header_style="bold magenta")
        counts.add_column("Property", style="cyan")
        counts.add_column("Exists", justify="right", style="green")
        counts.add_column("Missing", justify="right", style="red")
        for prop, values in view.pose_counts.items():
            counts.add_row(prop, str(values['exists']), str(values['missing']))
        console.print(counts)


def cmd_serve(args, config: MigrationConfig) -> int:
    from streetview_drive_migration.web.app import run

    if args.host:
        config.web.host = args.host
    if args.port:
        config.web.port = args.port
    run(config)
    return 0


def cmd_transfer(args, config: MigrationConfig) -> int:
    """Run a headless transfer; Ctrl+C cancels after the current photo."""
    credentials = installed_app_credentials(config.google)
    sink = TqdmProgressSink()
    session = build_session(config, credentials, sink)
    ledger = session.load_catalog()
    logger.info(f"{ledger.transferred_count} photos transferred, {ledger.missing_count} missing")

    def request_cancel(signum, frame):
        tqdm.write("Cancelling after the current photo...")
        session.cancel_transfer()

    previous_handler = signal.signal(signal.SIGINT, request_cancel)
    try:
        if args.photo_id:
            outcome = session.transfer_one(args.photo_id)
        else:
            outcome = session.start_transfer()
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        sink.close()

    snapshot = session.progress.snapshot()
    if outcome is TransferOutcome.FAILED:
        console.print(f"[red]{snapshot.error}[/red]")
    console.print(
        f"Transfer {outcome.value}: {session.ledger.transferred_count} transferred, "
        f"{session.ledger.missing_count} missing"
    )
    return 0 if outcome is TransferOutcome.COMPLETED else 1


def cmd_list(args, config: MigrationConfig) -> int:
    credentials = installed_app_credentials(config.google)
    session = build_session(config, credentials)
    spec = FilterSpec.from_payload({
        'search': args.search,
        'status': args.status,
        'filters': args.filter or [],
        'page': args.page,
    })
    view = session.filter_catalog(spec, sort_by=args.sort, order=args.order)
    print_listing(view, show_counts=args.counts)
    return 0


def cmd_refresh(args, config: MigrationConfig) -> int:
    credentials = installed_app_credentials(config.google)
    session = build_session(config, credentials)
    count = session.refresh_catalog()
    console.print(f"Catalog refreshed: {count:,} photos")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='streetview-drive-migration',
        description='Migrate Street View photos to Google Drive'
    )
    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Override the configured log level'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    serve = subparsers.add_parser('serve', help='Run the web interface')
    serve.add_argument('--host', type=str, help='Bind address (default from config)')
    serve.add_argument('--port', type=int, help='Port (default from config)')
    serve.set_defaults(handler=cmd_serve)

    transfer = subparsers.add_parser('transfer', help='Transfer all missing photos')
    transfer.add_argument(
        '--photo-id',
        type=str,
        help='Re-transfer a single photo, overwriting any existing copy'
    )
    transfer.set_defaults(handler=cmd_transfer)

    listing = subparsers.add_parser('list', help='List the photo catalog')
    listing.add_argument('--search', type=str, default='', help='Filter by place name')
    listing.add_argument(
        '--status',
        choices=['all', 'transferred', 'missing'],
        default='all',
        help='Filter by transfer status'
    )
    listing.add_argument(
        '--filter',
        action='append',
        metavar='PROPERTY',
        help='Only photos that have this pose property (repeatable)'
    )
    listing.add_argument('--page', type=int, default=1, help='Page number (default: 1)')
    listing.add_argument('--sort', choices=SORT_FIELDS, help='Sort by capture date or views')
    listing.add_argument('--order', choices=['asc', 'desc'], default='desc')
    listing.add_argument('--counts', action='store_true', help='Show pose attribute counts')
    listing.set_defaults(handler=cmd_list)

    refresh = subparsers.add_parser('refresh', help='Re-list the photo source and update the cached catalog')
    refresh.set_defaults(handler=cmd_refresh)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = MigrationConfig.load(args.config)
    except MigrationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.logging, level=args.log_level)

    try:
        return args.handler(args, config)
    except MigrationError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
