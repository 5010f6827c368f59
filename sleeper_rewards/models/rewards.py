"""Domain models for reward computation"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, Optional


class SessionStage(Enum):
    """Forward-only lifecycle of a reported session"""
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    PRICED = "PRICED"
    PERSISTED = "PERSISTED"      # Stored, processed=False
    DISTRIBUTED = "DISTRIBUTED"  # Folded into a daily distribution, processed=True


class BoostComposition(Enum):
    """How social and paid boosts combine before the holder multiplier"""
    MULTIPLICATIVE = "multiplicative"  # (1 + social) * (1 + paid) * holder, nightly forecast
    ADDITIVE = "additive"              # (1 + social + paid) * holder, session award


@dataclass
class PaidBoostState:
    """Active time-boxed boost as stored on the participant"""
    boost_id: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass
class NightContext:
    """Raw inputs for pricing one night"""
    minutes_active: int
    storage_amount: int
    human_checks_passed: int
    human_checks_failed: int
    week_index: int
    active_participants: int
    referral_count: int = 0
    daily_task_bonus: float = 0.0
    stake_amount: float = 0.0
    is_holder: bool = False
    paid_boost: PaidBoostState = field(default_factory=PaidBoostState)
    now: Optional[datetime] = None  # Reference time for paid boost expiry


@dataclass
class ComposedMultiplier:
    """Boost multiplier before and after the cap"""
    raw: float
    applied: float
    cap_triggered: bool


@dataclass
class NightReward:
    """Every factor that went into a night's points"""
    minutes_credited: int
    storage_multiplier: float
    human_multiplier: float
    stake_multiplier: float
    difficulty: float
    season_weeks: int
    base_points: float
    social_boost: float
    paid_boost_multiplier: float
    holder_multiplier: float
    raw_multiplier: float
    applied_multiplier: float
    cap_triggered: bool
    final_points: float

    def breakdown(self) -> Dict[str, float]:
        """Multipliers keyed the way clients display them"""
        return {
            'storage': self.storage_multiplier,
            'stake': self.stake_multiplier,
            'human': self.human_multiplier,
            'social': 1.0 + self.social_boost,
            'paid_boost': self.paid_boost_multiplier,
            'holder': self.holder_multiplier,
            'difficulty': self.difficulty,
            'total': self.applied_multiplier,
        }


@dataclass
class DistributionSummary:
    """Totals of one daily distribution"""
    night_date: date
    total_points: float
    pool_size: int
    total_distributed: int
    participant_count: int
    session_count: int
    season_number: int
    week_index: int
    awards: Dict[str, int] = field(default_factory=dict)

    @property
    def shortfall(self) -> int:
        """Tokens lost to floor rounding, never redistributed"""
        return self.pool_size - self.total_distributed
