"""Entry point for the rewards engine jobs"""
import argparse
import json
import logging
import signal
import sys
import threading
import traceback
from datetime import date

from sleeper_rewards.config import settings
from sleeper_rewards.db import db
from sleeper_rewards.errors import RewardsError
from sleeper_rewards.models.db import utcnow
from sleeper_rewards.scheduler import DistributionScheduler
from sleeper_rewards.services.distribution import DistributionService
from sleeper_rewards.services.season import SeasonService

logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger(__name__)


def init_db(args: argparse.Namespace) -> None:
    db.init()
    season = SeasonService(db, settings).ensure_active(utcnow().date())
    logger.info(f"Database ready, active season {season.season_number}")


def distribute(args: argparse.Namespace) -> None:
    db.init()
    service = DistributionService(db, settings)
    if args.date:
        outcome = service.distribute_night(date.fromisoformat(args.date))
    else:
        outcome = service.run_daily_distribution()
    logger.info(f"Distribution {outcome.night_date}: {outcome.status.value}")
    if outcome.summary:
        logger.info(json.dumps({
            'total_points': outcome.summary.total_points,
            'pool_size': outcome.summary.pool_size,
            'total_distributed': outcome.summary.total_distributed,
            'participant_count': outcome.summary.participant_count,
        }, indent=2))


def run_scheduler(args: argparse.Namespace) -> None:
    db.init()
    scheduler = DistributionScheduler(DistributionService(db, settings), settings)
    stopped = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stopped.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    scheduler.start()
    try:
        stopped.wait()
    finally:
        scheduler.stop()
        db.dispose()


def season(args: argparse.Namespace) -> None:
    db.init()
    info = SeasonService(db, settings).season_info(utcnow().date())
    if info is None:
        logger.info("No active season")
        return
    logger.info(info.model_dump_json(indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='sleeper_rewards', description='Sleeper rewards engine')
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('init-db', help='Create tables and start the first season').set_defaults(func=init_db)

    dist = commands.add_parser('distribute', help='Distribute tokens for a night')
    dist.add_argument('--date', help='Night to distribute (YYYY-MM-DD), defaults to yesterday UTC')
    dist.set_defaults(func=distribute)

    commands.add_parser('run-scheduler', help='Run the daily distribution scheduler').set_defaults(func=run_scheduler)
    commands.add_parser('season', help='Show the active season').set_defaults(func=season)
    return parser


def run() -> None:
    args = build_parser().parse_args()
    try:
        args.func(args)
    except RewardsError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(2)
    except Exception as e:
        logger.error(f"Error running {args.command}: {e}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    run()
