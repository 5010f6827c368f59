"""Daily conversion of a night's points into SLEEP tokens"""
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sleeper_rewards.config import Settings, settings as default_settings
from sleeper_rewards.db import Database
from sleeper_rewards.economy.engine import allocate_tokens
from sleeper_rewards.economy.season import nightly_pool, week_index_for
from sleeper_rewards.errors import DistributionConflict, PersistenceError
from sleeper_rewards.models.db import DistributionRecord, Participant, SleepSession, utcnow
from sleeper_rewards.models.results import DistributionOutcome, DistributionStatus
from sleeper_rewards.models.rewards import DistributionSummary, SessionStage
from sleeper_rewards.models.session import DistributionEvent
from sleeper_rewards.services.notifications import DistributionBroadcaster, WebhookNotifier
from sleeper_rewards.services.season import PAUSED, SeasonService

logger = logging.getLogger(__name__)


class DistributionService:
    """Runs the once-per-day distribution; safe to call repeatedly for the same date"""

    def __init__(self, database: Database, config: Settings = default_settings,
                 broadcaster: Optional[DistributionBroadcaster] = None):
        self.db = database
        self.config = config
        self.broadcaster = broadcaster or DistributionBroadcaster()
        if config.DISTRIBUTION_WEBHOOK_URL:
            self.broadcaster.subscribe(WebhookNotifier(config.DISTRIBUTION_WEBHOOK_URL))

    def run_daily_distribution(self, today: Optional[date] = None) -> DistributionOutcome:
        """Distribute the night before ``today`` (UTC)"""
        today = today or utcnow().date()
        return self.distribute_night(today - timedelta(days=1))

    def distribute_night(self, night_date: date) -> DistributionOutcome:
        """
        Distribute one calendar night.

        Returns a tagged outcome for every expected case, including a lost
        race against a concurrent run.

        Raises:
            PersistenceError: The transaction failed and was rolled back; retry later
        """
        logger.info(f"Starting SLEEP distribution for {night_date}")
        try:
            outcome = self._distribute(night_date)
        except DistributionConflict as e:
            logger.info(f"{e}; skipping")
            return DistributionOutcome(status=DistributionStatus.CONFLICT, night_date=night_date)
        except SQLAlchemyError as e:
            logger.error(f"Distribution for {night_date} failed and was rolled back: {e}")
            raise PersistenceError(f"Failed to distribute {night_date}") from e

        if outcome.completed:
            self._broadcast(outcome.summary)
        return outcome

    def _already_distributed(self, session: Session, night_date: date) -> bool:
        return session.query(DistributionRecord.id).filter_by(night_date=night_date).first() is not None

    def _distribute(self, night_date: date) -> DistributionOutcome:
        try:
            with self.db.session() as session:
                if self._already_distributed(session, night_date):
                    logger.info(f"Distribution for {night_date} already completed")
                    return DistributionOutcome(status=DistributionStatus.ALREADY_DISTRIBUTED, night_date=night_date)

                sessions: List[SleepSession] = session.query(SleepSession).filter_by(
                    night_date=night_date, processed=False
                ).order_by(SleepSession.id).all()
                if not sessions:
                    logger.info(f"No sessions to process for {night_date}")
                    return DistributionOutcome(status=DistributionStatus.NO_SESSIONS, night_date=night_date)

                season = SeasonService.get_or_start_active(session, night_date)
                if season.status == PAUSED:
                    logger.warning(f"Season {season.season_number} is paused, {night_date} left undistributed")
                    return DistributionOutcome(status=DistributionStatus.SEASON_PAUSED, night_date=night_date)

                summary = self._apply(session, night_date, sessions, season)
                session.flush()
        except IntegrityError as e:
            raise DistributionConflict(night_date) from e

        logger.info(f"Distribution completed: {summary.total_distributed} SLEEP to "
                    f"{summary.participant_count} participants (pool {summary.pool_size}, "
                    f"shortfall {summary.shortfall})")
        return DistributionOutcome(status=DistributionStatus.COMPLETED, night_date=night_date, summary=summary)

    def _apply(self, session: Session, night_date: date, sessions: List[SleepSession], season) -> DistributionSummary:
        """Allocate tokens and write every row of the distribution"""
        wallet_points: Dict[str, int] = {}
        for row in sessions:
            wallet_points[row.wallet_address] = wallet_points.get(row.wallet_address, 0) + (row.points or 0)
        total_points = sum(wallet_points.values())

        pool = nightly_pool(len(wallet_points), self.config.SEASON_POOL)
        awards = allocate_tokens(wallet_points, pool)
        total_distributed = sum(awards.values())
        logger.info(f"Processing {len(sessions)} sessions for {night_date}: "
                    f"total points {total_points}, pool {pool} SLEEP")

        now = utcnow()
        credited = set()
        for row in sessions:
            # A wallet's award is annotated on its first session only
            tokens = awards.get(row.wallet_address, 0) if row.wallet_address not in credited else 0
            credited.add(row.wallet_address)
            row.tokens_awarded = tokens
            row.processed = True
            row.processed_at = now
            row.status = SessionStage.DISTRIBUTED.value

        participants = session.query(Participant).filter(
            Participant.wallet_address.in_(list(awards))
        ).with_for_update().all()
        for participant in participants:
            participant.total_tokens_earned = (participant.total_tokens_earned or 0) + awards[participant.wallet_address]

        week_index = week_index_for(season.start_date, night_date)
        SeasonService.record_distribution(
            session, season, night_date, total_points, total_distributed, len(wallet_points)
        )

        session.add(DistributionRecord(
            night_date=night_date,
            total_points=total_points,
            pool_size=pool,
            total_distributed=total_distributed,
            participant_count=len(wallet_points),
            active_devices=len(wallet_points),
            season_number=season.season_number,
            week_index=week_index,
            distributed_at=now
        ))

        return DistributionSummary(
            night_date=night_date,
            total_points=total_points,
            pool_size=pool,
            total_distributed=total_distributed,
            participant_count=len(wallet_points),
            session_count=len(sessions),
            season_number=season.season_number,
            week_index=week_index,
            awards=awards
        )

    def _broadcast(self, summary: DistributionSummary) -> None:
        event = DistributionEvent(
            night_date=summary.night_date,
            total_points=summary.total_points,
            pool_size=summary.pool_size,
            total_distributed=summary.total_distributed,
            participant_count=summary.participant_count
        )
        self.broadcaster.publish(event)
