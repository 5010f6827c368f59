"""SQLAlchemy database models for participants, sessions and distributions"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Date, BigInteger, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Participant(Base):
    """
    One economy account per wallet.
    Created on first contact and never deleted.
    """
    __tablename__ = 'participants'

    wallet_address = Column(String(44), primary_key=True)
    username = Column(String(100), nullable=True, index=True)
    referral_code = Column(String(20), unique=True, nullable=False)
    referred_by = Column(String(44), ForeignKey('participants.wallet_address'), nullable=True)
    referral_count = Column(Integer, nullable=False, default=0)

    points_balance = Column(BigInteger, nullable=False, default=0)
    total_points = Column(Float, nullable=False, default=0.0)
    total_tokens_earned = Column(BigInteger, nullable=False, default=0)
    session_count = Column(Integer, nullable=False, default=0)

    # Permanent holder badge
    is_holder = Column(Boolean, nullable=False, default=False)
    holder_multiplier = Column(Float, nullable=False, default=1.0)
    holder_since = Column(DateTime, nullable=True)

    # Time-boxed paid boost, last purchase wins
    active_boost_id = Column(String(50), nullable=True)
    active_boost_expires_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    last_active_at = Column(DateTime, default=utcnow)


class SleepSession(Base):
    """
    One sleep-tracking interval for one wallet on one UTC calendar day.
    Immutable after pricing except for the distribution annotation.
    """
    __tablename__ = 'sleep_sessions'
    __table_args__ = (
        UniqueConstraint('wallet_address', 'night_date', name='uq_session_wallet_night'),
        UniqueConstraint('wallet_address', 'session_started_at', 'session_ended_at', name='uq_session_wallet_window'),
        Index('ix_session_processed_night', 'processed', 'night_date'),
    )

    id = Column(Integer, primary_key=True)
    wallet_address = Column(String(44), ForeignKey('participants.wallet_address'), nullable=False, index=True)
    night_date = Column(Date, nullable=False, index=True)
    week_index = Column(Integer, nullable=False)
    session_started_at = Column(BigInteger, nullable=False)
    session_ended_at = Column(BigInteger, nullable=False)
    duration_seconds = Column(Integer, nullable=False)

    # Telemetry as reported
    minutes_active = Column(Integer, nullable=False)
    storage_amount = Column(Integer, nullable=False)
    stake_amount = Column(Float, nullable=False, default=0.0)
    human_checks_passed = Column(Integer, nullable=False, default=0)
    human_checks_failed = Column(Integer, nullable=False, default=0)
    daily_task_bonus = Column(Float, nullable=False, default=0.0)
    referral_count = Column(Integer, nullable=False, default=0)
    paid_boost_id = Column(String(50), nullable=True)
    has_permanent_bonus = Column(Boolean, nullable=False, default=False)
    device_fingerprint = Column(String, nullable=True)

    # Multiplier snapshot
    storage_multiplier = Column(Float, nullable=False)
    stake_multiplier = Column(Float, nullable=False)
    human_multiplier = Column(Float, nullable=False)
    difficulty = Column(Float, nullable=False)
    social_boost = Column(Float, nullable=False)
    paid_boost_multiplier = Column(Float, nullable=False)
    holder_multiplier = Column(Float, nullable=False)
    raw_multiplier = Column(Float, nullable=False)
    applied_multiplier = Column(Float, nullable=False)
    cap_triggered = Column(Boolean, nullable=False, default=False)

    # Pricing
    base_points = Column(Float, nullable=False)
    client_points_per_second = Column(Float, nullable=False, default=0.0)
    server_points_per_second = Column(Float, nullable=False)
    effective_points_per_second = Column(Float, nullable=False)
    points = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)

    # Distribution
    status = Column(String(20), nullable=False, default='PERSISTED')
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=True)
    tokens_awarded = Column(BigInteger, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)


class SeasonState(Base):
    """
    Reward season. Exactly one row is ACTIVE at a time.
    """
    __tablename__ = 'season_state'

    season_number = Column(Integer, primary_key=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    total_weeks = Column(Integer, nullable=False)
    current_week = Column(Integer, nullable=False, default=1)

    active_devices = Column(Integer, nullable=False, default=0)
    total_points = Column(Float, nullable=False, default=0.0)
    total_tokens_distributed = Column(BigInteger, nullable=False, default=0)
    total_nights_processed = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default='ACTIVE', index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class DistributionRecord(Base):
    """
    Audit row written once per calendar day by the distribution job.
    Its unique night_date is the idempotency boundary.
    """
    __tablename__ = 'distribution_records'

    id = Column(Integer, primary_key=True)
    night_date = Column(Date, unique=True, nullable=False)
    total_points = Column(Float, nullable=False)
    pool_size = Column(BigInteger, nullable=False)
    total_distributed = Column(BigInteger, nullable=False)
    participant_count = Column(Integer, nullable=False)
    active_devices = Column(Integer, nullable=False)
    season_number = Column(Integer, nullable=False)
    week_index = Column(Integer, nullable=False)
    distributed_at = Column(DateTime, default=utcnow)


class Referral(Base):
    """Referrer/referee link, one referrer per referee"""
    __tablename__ = 'referrals'

    referrer = Column(String(44), ForeignKey('participants.wallet_address'), primary_key=True)
    referee = Column(String(44), ForeignKey('participants.wallet_address'), primary_key=True, unique=True)
    created_at = Column(DateTime, default=utcnow)


class AuthChallenge(Base):
    """Nonce a wallet must sign to obtain an auth token"""
    __tablename__ = 'auth_challenges'

    nonce = Column(String(64), primary_key=True)
    wallet_address = Column(String(44), nullable=False, index=True)
    message = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class WalletAuthToken(Base):
    """Bearer token proving control of a wallet"""
    __tablename__ = 'wallet_auth_tokens'

    token = Column(String(128), primary_key=True)
    wallet_address = Column(String(44), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
