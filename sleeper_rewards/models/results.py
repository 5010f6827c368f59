"""Tagged results for operations whose expected outcomes are not errors"""
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sleeper_rewards.models.rewards import DistributionSummary


class LookupStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass
class ParticipantProfile:
    """Read-only view of a participant"""
    wallet_address: str
    username: Optional[str]
    referral_code: str
    referral_count: int
    points_balance: int
    total_points: float
    total_tokens_earned: int
    session_count: int
    is_holder: bool
    active_boost_id: Optional[str]
    active_boost_expires_at: Optional[datetime]
    created_at: Optional[datetime]


@dataclass
class ParticipantLookup:
    status: LookupStatus
    profile: Optional[ParticipantProfile] = None

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.FOUND


class ReferralStatus(Enum):
    APPLIED = "applied"
    CODE_NOT_FOUND = "code_not_found"
    SELF_REFERRAL = "self_referral"
    ALREADY_REFERRED = "already_referred"


@dataclass
class ReferralResult:
    status: ReferralStatus
    referrer: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == ReferralStatus.APPLIED


@dataclass
class ActiveBoost:
    boost_id: str
    multiplier: float
    expires_at: datetime


class DistributionStatus(Enum):
    COMPLETED = "completed"
    ALREADY_DISTRIBUTED = "already_distributed"
    NO_SESSIONS = "no_sessions"
    SEASON_PAUSED = "season_paused"
    CONFLICT = "conflict"  # A concurrent run committed first


@dataclass
class DistributionOutcome:
    status: DistributionStatus
    night_date: date
    summary: Optional[DistributionSummary] = None

    @property
    def completed(self) -> bool:
        return self.status == DistributionStatus.COMPLETED
