"""Season lifecycle and cumulative season statistics"""
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from sleeper_rewards.config import Settings, settings as default_settings
from sleeper_rewards.db import Database
from sleeper_rewards.economy.season import nightly_pool, season_weeks, week_index_for
from sleeper_rewards.errors import PersistenceError, ValidationError
from sleeper_rewards.models.db import Participant, SeasonState
from sleeper_rewards.models.session import SeasonInfo

logger = logging.getLogger(__name__)

ACTIVE = 'ACTIVE'
COMPLETED = 'COMPLETED'
PAUSED = 'PAUSED'


class SeasonService:
    """Owns the season rows; the session-level helpers run inside a caller's transaction"""

    def __init__(self, database: Database, config: Settings = default_settings):
        self.db = database
        self.config = config

    @staticmethod
    def get_active(session: Session) -> Optional[SeasonState]:
        return session.query(SeasonState).filter_by(status=ACTIVE).first()

    @staticmethod
    def get_or_start_active(session: Session, today: date) -> SeasonState:
        """
        Return the active season, starting a new one when none is running.

        Season length is fixed at start from the participant count at that moment.
        A PAUSED season blocks a new one from starting and is returned as-is.
        """
        season = session.query(SeasonState).filter(
            SeasonState.status.in_([ACTIVE, PAUSED])
        ).order_by(SeasonState.season_number.desc()).first()
        if season is not None:
            return season

        last_number = session.query(func.max(SeasonState.season_number)).scalar() or 0
        participants = session.query(func.count(Participant.wallet_address)).scalar() or 0
        season = SeasonState(
            season_number=last_number + 1,
            start_date=today,
            total_weeks=season_weeks(participants),
            current_week=1,
            active_devices=0,
            total_points=0.0,
            total_tokens_distributed=0,
            total_nights_processed=0,
            status=ACTIVE
        )
        session.add(season)
        session.flush()
        logger.info(f"Season {season.season_number} started on {today} for {season.total_weeks} weeks")
        return season

    @staticmethod
    def current_week(season: SeasonState, today: date) -> int:
        return week_index_for(season.start_date, today)

    @staticmethod
    def record_distribution(session: Session, season: SeasonState, night_date: date,
                            total_points: float, total_tokens: int, participant_count: int) -> None:
        """Fold one night's distribution into the season totals"""
        season.total_points = (season.total_points or 0.0) + total_points
        season.total_tokens_distributed = (season.total_tokens_distributed or 0) + total_tokens
        season.total_nights_processed = (season.total_nights_processed or 0) + 1
        season.active_devices = participant_count

        week = week_index_for(season.start_date, night_date)
        season.current_week = min(week, season.total_weeks)
        # The night after the final week closes the season
        if week_index_for(season.start_date, night_date + timedelta(days=1)) > season.total_weeks:
            season.status = COMPLETED
            season.end_date = night_date
            logger.info(f"Season {season.season_number} completed on {night_date}")

    def ensure_active(self, today: date) -> SeasonState:
        try:
            with self.db.session() as session:
                return self.get_or_start_active(session, today)
        except SQLAlchemyError as e:
            logger.error(f"Database error starting season: {e}")
            raise PersistenceError("Failed to start season") from e

    def _set_status(self, season_number: int, expected: str, status: str) -> SeasonState:
        try:
            with self.db.session() as session:
                season = session.get(SeasonState, season_number)
                if season is None:
                    raise ValidationError(f"Unknown season {season_number}")
                if season.status != expected:
                    raise ValidationError(f"Season {season_number} is {season.status}, expected {expected}")
                season.status = status
                logger.info(f"Season {season_number} {expected} -> {status}")
                return season
        except SQLAlchemyError as e:
            logger.error(f"Database error updating season status: {e}")
            raise PersistenceError("Failed to update season status") from e

    def pause(self, season_number: int) -> SeasonState:
        return self._set_status(season_number, ACTIVE, PAUSED)

    def resume(self, season_number: int) -> SeasonState:
        return self._set_status(season_number, PAUSED, ACTIVE)

    def season_info(self, today: date) -> Optional[SeasonInfo]:
        """Snapshot of the running season, None when no season is running"""
        try:
            with self.db.session() as session:
                season = self.get_active(session)
                if season is None:
                    return None
                week = min(self.current_week(season, today), season.total_weeks)
                weeks_remaining = max(0, season.total_weeks - week)
                return SeasonInfo(
                    season_number=season.season_number,
                    start_date=season.start_date,
                    current_week=week,
                    total_weeks=season.total_weeks,
                    active_devices=season.active_devices,
                    total_points=season.total_points,
                    total_tokens_distributed=season.total_tokens_distributed,
                    total_nights_processed=season.total_nights_processed,
                    status=season.status,
                    pool_per_night=nightly_pool(season.active_devices, self.config.SEASON_POOL),
                    weeks_remaining=weeks_remaining,
                    nights_remaining=weeks_remaining * 7
                )
        except SQLAlchemyError as e:
            logger.error(f"Database error reading season: {e}")
            raise PersistenceError("Failed to read season") from e
