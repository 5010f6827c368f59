"""Per-night point computation and proportional token allocation"""
import math
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from sleeper_rewards.config import DEFAULT_ECONOMY, EconomyConfig
from sleeper_rewards.economy.boosts import (
    clamp,
    human_check_multiplier,
    paid_boost_multiplier,
    permanent_holder_multiplier,
    social_boost,
    stake_multiplier,
    storage_multiplier,
)
from sleeper_rewards.economy.season import difficulty_by_week, season_weeks
from sleeper_rewards.models.rewards import BoostComposition, ComposedMultiplier, NightContext, NightReward


def compose_multiplier(
        social: float,
        paid_multiplier: float,
        holder_multiplier: float,
        composition: BoostComposition = BoostComposition.MULTIPLICATIVE,
        cap: float = DEFAULT_ECONOMY.max_total_multiplier
) -> ComposedMultiplier:
    """
    Combine social, paid and holder boosts and cap the result.

    The two shapes differ and must not be unified: historical session
    awards were priced with the additive one.

    Args:
        social: Social boost fraction (0.4 = +40%)
        paid_multiplier: Catalog multiplier of the active paid boost (1.1 = +10%)
        holder_multiplier: Permanent holder multiplier
        composition: MULTIPLICATIVE for forecasts, ADDITIVE for session awards
        cap: Ceiling applied to the composed value, never to single factors
    """
    paid_percent = paid_multiplier - 1.0
    if composition == BoostComposition.ADDITIVE:
        raw = (1.0 + social + paid_percent) * holder_multiplier
    else:
        raw = (1.0 + social) * (1.0 + paid_percent) * holder_multiplier
    return ComposedMultiplier(raw=raw, applied=min(raw, cap), cap_triggered=raw > cap)


def compute_session_points(
        ctx: NightContext,
        composition: BoostComposition = BoostComposition.MULTIPLICATIVE,
        task_cap: Optional[float] = None,
        holder_multiplier: Optional[float] = None,
        config: EconomyConfig = DEFAULT_ECONOMY
) -> NightReward:
    """
    Price one night.

    Pure: the result depends only on the arguments. Paid boost expiry is
    judged against ``ctx.now``; without it no paid boost applies.
    """
    minutes = int(clamp(ctx.minutes_active, 0, config.max_sleep_minutes))

    storage = storage_multiplier(ctx.storage_amount, config)
    human = human_check_multiplier(ctx.human_checks_passed, ctx.human_checks_failed)
    stake = stake_multiplier(ctx.stake_amount, config)
    weeks = season_weeks(ctx.active_participants)
    difficulty = difficulty_by_week(max(1, ctx.week_index), weeks)

    base = minutes * config.rate_per_minute * storage * human * stake * difficulty

    social = social_boost(ctx.referral_count, ctx.daily_task_bonus, task_cap, config)
    if ctx.now is not None:
        paid = paid_boost_multiplier(ctx.paid_boost.boost_id, ctx.paid_boost.expires_at, ctx.now)
    else:
        paid = 1.0
    holder = permanent_holder_multiplier(ctx.is_holder, holder_multiplier, config)

    composed = compose_multiplier(social, paid, holder, composition, config.max_total_multiplier)

    return NightReward(
        minutes_credited=minutes,
        storage_multiplier=storage,
        human_multiplier=human,
        stake_multiplier=stake,
        difficulty=difficulty,
        season_weeks=weeks,
        base_points=base,
        social_boost=social,
        paid_boost_multiplier=paid,
        holder_multiplier=holder,
        raw_multiplier=composed.raw,
        applied_multiplier=composed.applied,
        cap_triggered=composed.cap_triggered,
        final_points=base * composed.applied,
    )


def forecast_night(ctx: NightContext, now: datetime, config: EconomyConfig = DEFAULT_ECONOMY) -> NightReward:
    """Expected points for a night, as shown before distribution"""
    return compute_session_points(
        replace(ctx, now=now), BoostComposition.MULTIPLICATIVE, config.max_task_bonus_forecast, config=config
    )


def tokens_for_wallet(wallet_points: float, total_points: float, pool: int) -> int:
    """Floor share of the pool; corrupted aggregates earn nothing"""
    if total_points <= 0 or wallet_points <= 0:
        return 0
    if wallet_points > total_points:
        return 0
    if isinstance(wallet_points, int) and isinstance(total_points, int):
        return pool * wallet_points // total_points
    return max(0, math.floor(pool * wallet_points / total_points))


def allocate_tokens(wallet_points: Dict[str, float], pool: int) -> Dict[str, int]:
    """
    Split a nightly pool proportionally to points.

    Floor allocation without largest-remainder correction: the sum may fall
    short of the pool by less than one token per wallet.
    """
    total = sum(wallet_points.values())
    return {wallet: tokens_for_wallet(points, total, pool) for wallet, points in wallet_points.items()}
