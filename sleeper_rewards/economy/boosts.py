"""Individual multiplier contributions to a night's points"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sleeper_rewards.config import DEFAULT_ECONOMY, EconomyConfig

logger = logging.getLogger(__name__)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def storage_multiplier(storage_amount: float, config: EconomyConfig = DEFAULT_ECONOMY) -> float:
    """Linear 1.0x..3.0x across the configured storage band, clamped at both ends"""
    low, high = config.min_storage_mb, config.max_storage_mb
    if storage_amount <= low:
        return config.min_storage_multiplier
    if storage_amount >= high:
        return config.max_storage_multiplier
    progress = (storage_amount - low) / (high - low)
    return config.min_storage_multiplier + progress * (config.max_storage_multiplier - config.min_storage_multiplier)


def human_check_multiplier(passed: int, failed: int) -> float:
    """
    Reliability tier from the human-check pass rate.

    >= 80% passes the full reward, 50-80% keeps 0.7 of it, below 50% keeps 0.3.
    A night with no checks at all is not penalised.
    """
    passed = max(0, passed)
    failed = max(0, failed)
    total = passed + failed
    if total == 0:
        return 1.0
    pass_rate = passed / total
    if pass_rate >= 0.8:
        return 1.0
    if pass_rate >= 0.5:
        return 0.7
    return 0.3


def stake_multiplier(staked_amount: float, config: EconomyConfig = DEFAULT_ECONOMY) -> float:
    """Three stake tiers, a stake exactly at a threshold gets the higher tier"""
    if staked_amount >= config.stake_high_threshold:
        return config.stake_high_multiplier
    if staked_amount >= config.stake_mid_threshold:
        return config.stake_mid_multiplier
    return 1.0


def referral_boost(referral_count: int, config: EconomyConfig = DEFAULT_ECONOMY) -> float:
    return min(max(0, referral_count) * config.boost_per_referral, config.max_referral_boost)


def social_boost(
        referral_count: int,
        daily_task_bonus: float,
        task_cap: Optional[float] = None,
        config: EconomyConfig = DEFAULT_ECONOMY
) -> float:
    """
    Referral and daily-task bonus as a fraction (0.25 = +25%).

    Each source is capped on its own, then the sum is capped again so no
    single growth channel can dominate.
    """
    if task_cap is None:
        task_cap = config.max_task_bonus_forecast
    task = clamp(daily_task_bonus, 0.0, task_cap)
    return min(referral_boost(referral_count, config) + task, config.max_social_boost)


def permanent_holder_multiplier(is_holder: bool, multiplier: Optional[float] = None,
                                config: EconomyConfig = DEFAULT_ECONOMY) -> float:
    if not is_holder:
        return 1.0
    return multiplier if multiplier is not None else config.holder_multiplier


@dataclass(frozen=True)
class BoostItem:
    """Purchasable time-boxed boost"""
    id: str
    name: str
    price_raw: int       # Smallest token units, 6 decimals
    multiplier: float    # 1.05 = +5%
    duration: timedelta

    @property
    def percent(self) -> float:
        return self.multiplier - 1.0

    def expires_at(self, purchased_at: datetime) -> datetime:
        return purchased_at + self.duration


_UNIT = 1_000_000


class BoostCatalog:
    """Fixed catalog of paid boosts"""

    ITEMS: List[BoostItem] = [
        BoostItem('boost_7h', '1x boost 7h', 1 * _UNIT, 1.05, timedelta(hours=7)),
        BoostItem('boost_7x', '7x boost 49h', 6 * _UNIT, 1.05, timedelta(hours=49)),
        BoostItem('boost_49x', '49x boost 7 days', 49 * _UNIT, 1.10, timedelta(hours=168)),
        BoostItem('skr_lite', 'Lite +5%', 1 * _UNIT, 1.05, timedelta(days=1)),
        BoostItem('skr_plus', 'Plus +10%', int(2.5 * _UNIT), 1.10, timedelta(days=1)),
        BoostItem('skr_pro', 'Pro +50%', 10 * _UNIT, 1.50, timedelta(days=3)),
        BoostItem('skr_ultra', 'Ultra +100%', 20 * _UNIT, 2.00, timedelta(days=7)),
    ]

    _by_id: Dict[str, BoostItem] = {item.id: item for item in ITEMS}

    @classmethod
    def get(cls, boost_id: Optional[str]) -> Optional[BoostItem]:
        """Look up a boost; None for an unknown or missing id"""
        if not boost_id:
            return None
        return cls._by_id.get(boost_id)


def paid_boost_multiplier(active_boost_id: Optional[str], expires_at: Optional[datetime],
                          now: datetime) -> float:
    """Catalog multiplier of the active boost, 1.0 once it has expired"""
    if not active_boost_id or expires_at is None or now >= expires_at:
        return 1.0

    item = BoostCatalog.get(active_boost_id)
    if item is None:
        # Unknown ids earn nothing; a typo in a stored id shows up here
        logger.warning(f"Unknown paid boost id '{active_boost_id}', applying 1.0x")
        return 1.0
    return item.multiplier
