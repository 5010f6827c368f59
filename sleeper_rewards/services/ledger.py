"""Session-end pricing and the participant point balance"""
import logging
import math
from datetime import datetime, timezone, date
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sleeper_rewards.config import Settings, settings as default_settings
from sleeper_rewards.db import Database
from sleeper_rewards.economy.boosts import clamp
from sleeper_rewards.economy.engine import compute_session_points
from sleeper_rewards.economy.season import week_index_for
from sleeper_rewards.errors import PersistenceError, ValidationError
from sleeper_rewards.models.db import Participant, SleepSession, utcnow
from sleeper_rewards.models.results import ActiveBoost, ParticipantLookup, ParticipantProfile, ReferralResult
from sleeper_rewards.models.rewards import BoostComposition, NightContext, NightReward, PaidBoostState, SessionStage
from sleeper_rewards.models.session import SessionHistoryEntry, SessionReport, SessionResult
from sleeper_rewards.services.auth import AuthService
from sleeper_rewards.services.participants import ParticipantService, ensure_participant, require_wallet
from sleeper_rewards.services.season import SeasonService
from sleeper_rewards.wallet import short_wallet

logger = logging.getLogger(__name__)

# Attempts of the write transaction; a lost insert race resolves on the second pass
MAX_ATTEMPTS = 2


def night_date_for(started_at_ms: int) -> date:
    """UTC calendar day a session belongs to: the day it started"""
    return datetime.fromtimestamp(started_at_ms / 1000, tz=timezone.utc).date()


def stored_multipliers(row: SleepSession) -> Dict[str, float]:
    return {
        'storage': row.storage_multiplier,
        'stake': row.stake_multiplier,
        'human': row.human_multiplier,
        'social': 1.0 + row.social_boost,
        'paid_boost': row.paid_boost_multiplier,
        'holder': row.holder_multiplier,
        'difficulty': row.difficulty,
        'total': row.applied_multiplier,
    }


class SessionLedger:
    """
    Records session-end reports and keeps participant balances.

    Every report moves through RECEIVED -> VALIDATED -> PRICED -> PERSISTED;
    the distribution job later moves the stored row to DISTRIBUTED. A session
    never goes back a stage.
    """

    def __init__(self, database: Database, config: Settings = default_settings,
                 auth: Optional[AuthService] = None,
                 participants: Optional[ParticipantService] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            database: Initialized database manager
            config: Settings, REQUIRE_SESSION_AUTH and the economy constants are read from it
            auth: Token checker, built from the database when omitted
            participants: Participant service the lifecycle operations delegate to
            clock: Returns naive UTC now; injectable for tests
        """
        self.db = database
        self.config = config
        self.economy = config.economy
        self.auth = auth or AuthService(database, config)
        self.participants = participants or ParticipantService(database, config)
        self._clock = clock or utcnow

    def _stage(self, wallet_address: str, stage: SessionStage, detail: str = '') -> None:
        logger.debug(f"Session {short_wallet(wallet_address)} {stage.value} {detail}".rstrip())

    def record_session_end(self, report: SessionReport) -> SessionResult:
        """
        Price a finished session and credit the participant.

        Replaying an already recorded (wallet, start, end) window returns the
        stored outcome with duplicate=True and credits nothing.

        Raises:
            ValidationError: Bad wallet, empty window, or another window already recorded that night
            AuthenticationError: Token required and missing, unknown or expired
            PersistenceError: Transaction failure, safe to retry the whole call
        """
        wallet_address = require_wallet(report.wallet_address)
        self._stage(wallet_address, SessionStage.RECEIVED)

        if report.session_ended_at <= report.session_started_at:
            raise ValidationError("invalid session timestamps")

        now = self._clock()
        if self.config.REQUIRE_SESSION_AUTH:
            self.auth.check_token(wallet_address, report.auth_token, now)
        self._stage(wallet_address, SessionStage.VALIDATED)

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                with self.db.session() as session:
                    return self._record(session, wallet_address, report, now)
            except IntegrityError as e:
                if attempt == MAX_ATTEMPTS:
                    logger.error(f"Session insert conflict persisted after retry: {e}")
                    raise PersistenceError("Failed to record session") from e
                logger.warning(f"Concurrent report for {short_wallet(wallet_address)}, retrying")
            except SQLAlchemyError as e:
                logger.error(f"Database error recording session: {e}")
                raise PersistenceError("Failed to record session") from e

    def _record(self, session: Session, wallet_address: str, report: SessionReport, now: datetime) -> SessionResult:
        night_date = night_date_for(report.session_started_at)
        recorded = self._recorded_night(session, wallet_address, night_date)
        if recorded is not None:
            window = (recorded.session_started_at, recorded.session_ended_at)
            if window == (report.session_started_at, report.session_ended_at):
                return self._duplicate_result(session, recorded)
            raise ValidationError(f"a session for {night_date} is already recorded")

        participant = ensure_participant(session, wallet_address, now, report.username, lock=True)
        # Season state follows the server clock; the report window only places the night
        season = SeasonService.get_or_start_active(session, now.date())
        week_index = week_index_for(season.start_date, night_date)

        duration_seconds = report.duration_seconds
        reward = self._price(report, participant, week_index, season.active_devices, duration_seconds, now)
        self._stage(wallet_address, SessionStage.PRICED, f"{reward.final_points:.2f} points")

        server_pps = reward.final_points / duration_seconds if duration_seconds > 0 else 0.0
        client_pps = clamp(report.points_per_second, 0.0, self.economy.max_client_points_per_second)
        if 0 < client_pps < server_pps:
            effective_pps = client_pps
            credited = math.floor(client_pps * duration_seconds)
        else:
            effective_pps = server_pps
            credited = math.floor(reward.final_points)
        credited = max(0, credited)

        if report.has_permanent_bonus and not participant.is_holder:
            logger.info(f"Unverified holder claim from {short_wallet(wallet_address)} ignored")
        if report.active_boost_id and report.active_boost_id != participant.active_boost_id:
            logger.info(f"Client boost '{report.active_boost_id}' does not match stored boost "
                        f"'{participant.active_boost_id}' for {short_wallet(wallet_address)}")

        balance = max(0, (participant.points_balance or 0) + credited)
        row = SleepSession(
            wallet_address=wallet_address,
            night_date=night_date,
            week_index=week_index,
            session_started_at=report.session_started_at,
            session_ended_at=report.session_ended_at,
            duration_seconds=duration_seconds,
            minutes_active=reward.minutes_credited,
            storage_amount=max(0, report.storage_amount),
            stake_amount=max(0.0, report.stake_amount),
            human_checks_passed=max(0, report.human_checks_passed),
            human_checks_failed=max(0, report.human_checks_failed),
            daily_task_bonus=report.daily_social_bonus_percent,
            referral_count=participant.referral_count or 0,
            paid_boost_id=participant.active_boost_id,
            has_permanent_bonus=participant.is_holder,
            device_fingerprint=report.device_fingerprint,
            storage_multiplier=reward.storage_multiplier,
            stake_multiplier=reward.stake_multiplier,
            human_multiplier=reward.human_multiplier,
            difficulty=reward.difficulty,
            social_boost=reward.social_boost,
            paid_boost_multiplier=reward.paid_boost_multiplier,
            holder_multiplier=reward.holder_multiplier,
            raw_multiplier=reward.raw_multiplier,
            applied_multiplier=reward.applied_multiplier,
            cap_triggered=reward.cap_triggered,
            base_points=reward.base_points,
            client_points_per_second=client_pps,
            server_points_per_second=server_pps,
            effective_points_per_second=effective_pps,
            points=credited,
            balance_after=balance,
            status=SessionStage.PERSISTED.value,
            processed=False,
            created_at=now
        )
        session.add(row)
        session.flush()

        participant.points_balance = balance
        participant.total_points = (participant.total_points or 0.0) + credited
        participant.session_count = (participant.session_count or 0) + 1
        participant.last_active_at = now

        self._stage(wallet_address, SessionStage.PERSISTED, f"id={row.id}")
        logger.info(f"Session recorded: {short_wallet(wallet_address)} night={night_date} "
                    f"points={credited} balance={balance}")
        if reward.cap_triggered:
            logger.info(f"Boost cap hit for {short_wallet(wallet_address)}: "
                        f"{reward.raw_multiplier:.2f}x -> {reward.applied_multiplier:.2f}x")

        return SessionResult(
            session_id=row.id,
            wallet_address=wallet_address,
            night_date=night_date,
            balance=balance,
            points_earned=credited,
            points_per_second=effective_pps,
            points_per_second_server=server_pps,
            points_per_second_client=client_pps,
            multipliers=reward.breakdown(),
            cap_triggered=reward.cap_triggered,
            duplicate=False
        )

    def _recorded_night(self, session: Session, wallet_address: str, night_date: date) -> Optional[SleepSession]:
        """The wallet's stored session for a night; one window per night"""
        return session.query(SleepSession).filter_by(
            wallet_address=wallet_address, night_date=night_date
        ).first()

    def _price(self, report: SessionReport, participant: Participant, week_index: int,
               active_participants: int, duration_seconds: int, now: datetime) -> NightReward:
        """Recompute the night from raw telemetry and the stored participant state"""
        minutes = min(report.minutes_active, duration_seconds // 60 + 1)
        ctx = NightContext(
            minutes_active=max(0, minutes),
            storage_amount=max(0, report.storage_amount),
            human_checks_passed=report.human_checks_passed,
            human_checks_failed=report.human_checks_failed,
            week_index=week_index,
            active_participants=active_participants,
            referral_count=participant.referral_count or 0,
            daily_task_bonus=report.daily_social_bonus_percent,
            stake_amount=report.stake_amount,
            is_holder=bool(participant.is_holder),
            paid_boost=PaidBoostState(participant.active_boost_id, participant.active_boost_expires_at),
            now=now
        )
        return compute_session_points(
            ctx,
            composition=BoostComposition.ADDITIVE,
            task_cap=self.economy.max_task_bonus_session,
            holder_multiplier=participant.holder_multiplier if participant.is_holder else None,
            config=self.economy
        )

    @staticmethod
    def _duplicate_result(session: Session, row: SleepSession) -> SessionResult:
        participant = session.get(Participant, row.wallet_address)
        logger.info(f"Duplicate session window for {short_wallet(row.wallet_address)}, id={row.id}")
        return SessionResult(
            session_id=row.id,
            wallet_address=row.wallet_address,
            night_date=row.night_date,
            balance=participant.points_balance if participant else row.balance_after,
            points_earned=0,
            points_per_second=row.effective_points_per_second,
            points_per_second_server=row.server_points_per_second,
            points_per_second_client=row.client_points_per_second,
            multipliers=stored_multipliers(row),
            cap_triggered=row.cap_triggered,
            duplicate=True
        )

    def get_balance(self, wallet_address: str) -> int:
        """Current balance; an unseen wallet is created with zero points"""
        wallet_address = require_wallet(wallet_address)
        now = self._clock()
        try:
            with self.db.session() as session:
                participant = ensure_participant(session, wallet_address, now)
                return int(participant.points_balance or 0)
        except IntegrityError:
            # Created concurrently; the row exists now
            return self._read_balance(wallet_address)
        except SQLAlchemyError as e:
            logger.error(f"Database error reading balance: {e}")
            raise PersistenceError("Failed to read balance") from e

    def _read_balance(self, wallet_address: str) -> int:
        try:
            with self.db.session() as session:
                participant = session.get(Participant, wallet_address)
                return int(participant.points_balance or 0) if participant else 0
        except SQLAlchemyError as e:
            logger.error(f"Database error reading balance: {e}")
            raise PersistenceError("Failed to read balance") from e

    def session_history(self, wallet_address: str, limit: int = 30) -> List[SessionHistoryEntry]:
        """Most recent sessions first"""
        wallet_address = require_wallet(wallet_address)
        limit = max(1, min(limit, 365))
        try:
            with self.db.session() as session:
                rows = session.query(SleepSession).filter_by(
                    wallet_address=wallet_address
                ).order_by(SleepSession.night_date.desc()).limit(limit).all()
                return [
                    SessionHistoryEntry(
                        session_id=row.id,
                        night_date=row.night_date,
                        minutes_active=row.minutes_active,
                        storage_amount=row.storage_amount,
                        points=row.points,
                        multipliers=stored_multipliers(row),
                        tokens_awarded=row.tokens_awarded or 0,
                        status=row.status,
                        processed=row.processed
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            logger.error(f"Database error reading session history: {e}")
            raise PersistenceError("Failed to read session history") from e

    # Participant lifecycle, delegated so collaborators need a single entry point

    def register(self, wallet_address: str, username: Optional[str] = None) -> ParticipantProfile:
        return self.participants.register(wallet_address, username, now=self._clock())

    def lookup_participant(self, wallet_address: str) -> ParticipantLookup:
        return self.participants.lookup(wallet_address)

    def apply_referral(self, wallet_address: str, referral_code: str) -> ReferralResult:
        return self.participants.apply_referral(wallet_address, referral_code, now=self._clock())

    def activate_boost(self, wallet_address: str, boost_id: str) -> ActiveBoost:
        return self.participants.activate_boost(wallet_address, boost_id, now=self._clock())

    def active_boost(self, wallet_address: str) -> Optional[ActiveBoost]:
        return self.participants.active_boost(wallet_address, now=self._clock())

    def grant_permanent_bonus(self, wallet_address: str, multiplier: Optional[float] = None) -> ParticipantProfile:
        return self.participants.grant_permanent_bonus(wallet_address, multiplier, now=self._clock())
