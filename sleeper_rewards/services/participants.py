"""Participant registration, referrals and boost purchases"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from sleeper_rewards.config import Settings, settings as default_settings
from sleeper_rewards.db import Database
from sleeper_rewards.economy.boosts import BoostCatalog
from sleeper_rewards.errors import PersistenceError, ValidationError
from sleeper_rewards.models.db import Participant, Referral, utcnow
from sleeper_rewards.models.results import (
    ActiveBoost,
    LookupStatus,
    ParticipantLookup,
    ParticipantProfile,
    ReferralResult,
    ReferralStatus,
)
from sleeper_rewards.wallet import is_valid_wallet_address, short_wallet

logger = logging.getLogger(__name__)


def require_wallet(wallet_address: Optional[str]) -> str:
    if not wallet_address:
        raise ValidationError("wallet is required")
    wallet_address = wallet_address.strip()
    if not is_valid_wallet_address(wallet_address):
        raise ValidationError("invalid wallet format")
    return wallet_address


def _unique_referral_code(session: Session, wallet_address: str) -> str:
    """Wallet prefix, lengthened until no other participant holds it"""
    for length in (8, 12, 16, 20):
        code = wallet_address[:length]
        if session.query(Participant.wallet_address).filter_by(referral_code=code).first() is None:
            return code
    return wallet_address[:20]


def ensure_participant(session: Session, wallet_address: str, now: datetime,
                       username: Optional[str] = None, lock: bool = False) -> Participant:
    """
    Fetch the participant row, creating it with a zero balance on first contact.

    With lock=True the row is read FOR UPDATE so balance writes in the same
    transaction cannot be lost to a concurrent report for the same wallet.
    """
    query = session.query(Participant).filter_by(wallet_address=wallet_address)
    if lock:
        query = query.with_for_update()
    participant = query.first()

    if participant is None:
        participant = Participant(
            wallet_address=wallet_address,
            username=username,
            referral_code=_unique_referral_code(session, wallet_address),
            referral_count=0,
            points_balance=0,
            total_points=0.0,
            total_tokens_earned=0,
            session_count=0,
            is_holder=False,
            holder_multiplier=1.0,
            created_at=now,
            last_active_at=now
        )
        session.add(participant)
        session.flush()
        logger.info(f"Participant created: {short_wallet(wallet_address)}")
        if lock:
            participant = session.query(Participant).filter_by(
                wallet_address=wallet_address
            ).with_for_update().one()
    elif username:
        participant.username = username

    return participant


def to_profile(participant: Participant) -> ParticipantProfile:
    return ParticipantProfile(
        wallet_address=participant.wallet_address,
        username=participant.username,
        referral_code=participant.referral_code,
        referral_count=participant.referral_count,
        points_balance=participant.points_balance,
        total_points=participant.total_points,
        total_tokens_earned=participant.total_tokens_earned,
        session_count=participant.session_count,
        is_holder=participant.is_holder,
        active_boost_id=participant.active_boost_id,
        active_boost_expires_at=participant.active_boost_expires_at,
        created_at=participant.created_at
    )


class ParticipantService:
    """Handles participant lifecycle events other than session reports"""

    def __init__(self, database: Database, config: Settings = default_settings):
        self.db = database
        self.config = config

    def register(self, wallet_address: str, username: Optional[str] = None,
                 now: Optional[datetime] = None) -> ParticipantProfile:
        """Register or update a participant"""
        wallet_address = require_wallet(wallet_address)
        now = now or utcnow()
        try:
            with self.db.session() as session:
                participant = ensure_participant(session, wallet_address, now, username)
                participant.last_active_at = now
                return to_profile(participant)
        except SQLAlchemyError as e:
            logger.error(f"Database error registering participant: {e}")
            raise PersistenceError("Failed to register participant") from e

    def lookup(self, wallet_address: str) -> ParticipantLookup:
        """Profile of a known wallet; an unknown wallet is a NOT_FOUND result, not an error"""
        wallet_address = require_wallet(wallet_address)
        try:
            with self.db.session() as session:
                participant = session.get(Participant, wallet_address)
                if participant is None:
                    return ParticipantLookup(status=LookupStatus.NOT_FOUND)
                return ParticipantLookup(status=LookupStatus.FOUND, profile=to_profile(participant))
        except SQLAlchemyError as e:
            logger.error(f"Database error looking up participant: {e}")
            raise PersistenceError("Failed to look up participant") from e

    def apply_referral(self, wallet_address: str, referral_code: str,
                       now: Optional[datetime] = None) -> ReferralResult:
        """Link a wallet to the owner of a referral code, once per wallet"""
        wallet_address = require_wallet(wallet_address)
        if not referral_code:
            raise ValidationError("referral code is required")
        now = now or utcnow()

        try:
            with self.db.session() as session:
                referrer = session.query(Participant).filter_by(
                    referral_code=referral_code.strip()
                ).with_for_update().first()
                if referrer is None:
                    return ReferralResult(status=ReferralStatus.CODE_NOT_FOUND)
                if referrer.wallet_address == wallet_address:
                    return ReferralResult(status=ReferralStatus.SELF_REFERRAL, referrer=referrer.wallet_address)

                referee = ensure_participant(session, wallet_address, now, lock=True)
                if referee.referred_by is not None or session.query(Referral).filter_by(referee=wallet_address).first():
                    return ReferralResult(status=ReferralStatus.ALREADY_REFERRED, referrer=referee.referred_by)

                session.add(Referral(referrer=referrer.wallet_address, referee=wallet_address, created_at=now))
                referee.referred_by = referrer.wallet_address
                referrer.referral_count = (referrer.referral_count or 0) + 1

                logger.info(f"Referral applied: {short_wallet(wallet_address)} -> {short_wallet(referrer.wallet_address)}")
                return ReferralResult(status=ReferralStatus.APPLIED, referrer=referrer.wallet_address)
        except SQLAlchemyError as e:
            logger.error(f"Database error applying referral: {e}")
            raise PersistenceError("Failed to apply referral") from e

    def activate_boost(self, wallet_address: str, boost_id: str,
                       now: Optional[datetime] = None) -> ActiveBoost:
        """
        Record a paid boost purchase.

        The new boost replaces whatever is active, even a stronger or longer
        one: last purchase wins.
        """
        wallet_address = require_wallet(wallet_address)
        item = BoostCatalog.get(boost_id)
        if item is None:
            raise ValidationError(f"Unknown boost ID: {boost_id}")
        now = now or utcnow()

        try:
            with self.db.session() as session:
                participant = ensure_participant(session, wallet_address, now, lock=True)
                replaced = participant.active_boost_id
                if replaced and participant.active_boost_expires_at and participant.active_boost_expires_at > now:
                    logger.info(f"Boost {replaced} of {short_wallet(wallet_address)} replaced by {item.id}")
                participant.active_boost_id = item.id
                participant.active_boost_expires_at = item.expires_at(now)
                participant.last_active_at = now
                return ActiveBoost(
                    boost_id=item.id,
                    multiplier=item.multiplier,
                    expires_at=participant.active_boost_expires_at
                )
        except SQLAlchemyError as e:
            logger.error(f"Database error activating boost: {e}")
            raise PersistenceError("Failed to activate boost") from e

    def active_boost(self, wallet_address: str, now: Optional[datetime] = None) -> Optional[ActiveBoost]:
        wallet_address = require_wallet(wallet_address)
        now = now or utcnow()
        try:
            with self.db.session() as session:
                participant = session.get(Participant, wallet_address)
                if participant is None or not participant.active_boost_id:
                    return None
                if participant.active_boost_expires_at is None or participant.active_boost_expires_at <= now:
                    return None
                item = BoostCatalog.get(participant.active_boost_id)
                if item is None:
                    logger.warning(f"Stored boost id '{participant.active_boost_id}' is not in the catalog")
                    return None
                return ActiveBoost(
                    boost_id=item.id,
                    multiplier=item.multiplier,
                    expires_at=participant.active_boost_expires_at
                )
        except SQLAlchemyError as e:
            logger.error(f"Database error reading active boost: {e}")
            raise PersistenceError("Failed to read active boost") from e

    def grant_permanent_bonus(self, wallet_address: str, multiplier: Optional[float] = None,
                              now: Optional[datetime] = None) -> ParticipantProfile:
        """Mark a wallet as permanent holder; the multiplier is fixed at grant time"""
        wallet_address = require_wallet(wallet_address)
        now = now or utcnow()
        value = multiplier if multiplier is not None else self.config.HOLDER_MULTIPLIER
        if value < 1.0:
            raise ValidationError("holder multiplier must be at least 1.0")

        try:
            with self.db.session() as session:
                participant = ensure_participant(session, wallet_address, now, lock=True)
                if not participant.is_holder:
                    participant.is_holder = True
                    participant.holder_multiplier = value
                    participant.holder_since = now
                    logger.info(f"Permanent bonus granted to {short_wallet(wallet_address)} ({value}x)")
                return to_profile(participant)
        except SQLAlchemyError as e:
            logger.error(f"Database error granting permanent bonus: {e}")
            raise PersistenceError("Failed to grant permanent bonus") from e
