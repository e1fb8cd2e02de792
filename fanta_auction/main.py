"""
Main CLI entry point for the fantasy football live auction.
"""

import argparse
import logging
import sys
from pathlib import Path

from . import config


def setup_logging(verbose: bool = False):
    """
    Configure logging for the application.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL)
    logging.basicConfig(
        level=level,
        format=config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    default_state = Path(config.STATE_DIR) / config.SNAPSHOT_FILENAME

    parser = argparse.ArgumentParser(
        description='Fantasy Football Live Auction',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the auction server
  python -m fanta_auction.main serve

  # Preload the player pool and listen on all interfaces
  python -m fanta_auction.main serve --players-csv listone.csv --host 0.0.0.0

  # Export squads from the saved auction state
  python -m fanta_auction.main export --output squads.csv
        """
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose (DEBUG) logging'
    )
    parser.add_argument(
        '--state-file',
        type=Path,
        default=default_state,
        help=f'Auction snapshot file (default: {default_state})'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    serve = subparsers.add_parser('serve', help='Run the auction server')
    serve.add_argument(
        '--host',
        default=config.API_HOST,
        help=f'Bind address (default: {config.API_HOST})'
    )
    serve.add_argument(
        '--port',
        type=int,
        default=config.API_PORT,
        help=f'Port (default: {config.API_PORT})'
    )
    serve.add_argument(
        '--players-csv',
        type=Path,
        help='CSV with name,role,club,value columns to load as the player pool'
    )

    export = subparsers.add_parser('export', help='Export squads from the saved state to CSV')
    export.add_argument(
        '--output',
        type=Path,
        default=Path(config.EXPORT_DIR) / 'squads.csv',
        help=f'Output CSV (default: {config.EXPORT_DIR}/squads.csv)'
    )

    return parser.parse_args(argv)


def build_service(state_file: Path, players_csv: Path = None):
    """
    Create the auction service backed by the snapshot file.

    Args:
        state_file: Snapshot to resume from and persist to
        players_csv: Optional player pool to load on startup
    """
    from .auction.replication import AuctionStore
    from .auction.service import AuctionService
    from .auction.snapshot_file import SnapshotFile
    from .player_pool import load_players_csv

    logger = logging.getLogger(__name__)

    store = AuctionStore(snapshot_file=SnapshotFile(state_file))
    service = AuctionService(store)

    if players_csv:
        players = load_players_csv(players_csv)
        status = store.snapshot().data['status']
        if status in ('SETUP', 'READY', 'ENDED'):
            service.set_players(config.ADMIN_USER_ID, players)
        else:
            logger.warning(f"Auction is {status}; ignoring --players-csv")

    return service


def run_server(args):
    """Serve the auction API until interrupted."""
    import uvicorn
    from .auction.api_server import create_app
    from .auction.errors import InvalidPlayerPoolError

    logger = logging.getLogger(__name__)

    logger.info("="*60)
    logger.info("Fantasy Football Live Auction")
    logger.info("="*60)

    try:
        service = build_service(args.state_file, args.players_csv)
    except (FileNotFoundError, InvalidPlayerPoolError) as e:
        logger.error(f"Cannot load player pool: {e}")
        sys.exit(1)

    app = create_app(service)
    logger.info(f"Listening on http://{args.host}:{args.port}")

    try:
        uvicorn.run(app, host=args.host, port=args.port)
    except KeyboardInterrupt:
        logger.info("\nAuction server interrupted by user")
    except Exception as e:
        logger.exception(f"Error while serving: {e}")
        sys.exit(1)


def run_export(args):
    """Write every squad in the saved state to CSV."""
    from .auction.models import AuctionState
    from .auction.snapshot_file import SnapshotFile
    from .export import export_squads_csv

    logger = logging.getLogger(__name__)

    saved = SnapshotFile(args.state_file).load()
    if not saved:
        logger.error(f"No auction state found at {args.state_file}")
        sys.exit(1)

    state = AuctionState.from_dict(saved['state'])
    path = export_squads_csv(state, args.output)
    print(f"Squads written to {path}")


def main(argv=None):
    """Main execution function with command branching."""
    args = parse_arguments(argv)

    setup_logging(args.verbose)

    if args.command == 'serve':
        run_server(args)
    elif args.command == 'export':
        run_export(args)


if __name__ == '__main__':
    main()
