"""Unit tests for night pricing and token allocation"""
from datetime import datetime, timedelta

import pytest

from sleeper_rewards.economy.engine import (
    allocate_tokens,
    compose_multiplier,
    compute_session_points,
    forecast_night,
    tokens_for_wallet,
)
from sleeper_rewards.models.rewards import BoostComposition, NightContext, PaidBoostState

NOW = datetime(2026, 3, 1, 12, 0)


def make_context(**overrides) -> NightContext:
    values = dict(
        minutes_active=60,
        storage_amount=100,
        human_checks_passed=9,
        human_checks_failed=1,
        week_index=1,
        active_participants=500,
    )
    values.update(overrides)
    return NightContext(**values)


# ============================================================================
# compute_session_points
# ============================================================================

class TestComputeSessionPoints:

    def test_base_points_for_an_hour(self):
        """An hour at minimum storage, reliable checks, week one of a 16-week season"""
        reward = compute_session_points(make_context())
        assert reward.season_weeks == 16
        assert reward.difficulty == 1.0
        assert reward.base_points == pytest.approx(12.0)
        assert reward.final_points == pytest.approx(12.0)
        assert not reward.cap_triggered

    def test_deterministic(self):
        ctx = make_context(
            storage_amount=420, stake_amount=2_500, referral_count=7, daily_task_bonus=0.12,
            is_holder=True, paid_boost=PaidBoostState('skr_plus', NOW + timedelta(hours=5)), now=NOW
        )
        first = compute_session_points(ctx, BoostComposition.ADDITIVE, task_cap=0.15)
        for _ in range(5):
            assert compute_session_points(ctx, BoostComposition.ADDITIVE, task_cap=0.15) == first

    def test_minutes_clamped(self):
        assert compute_session_points(make_context(minutes_active=-20)).final_points == 0.0
        over = compute_session_points(make_context(minutes_active=2_000))
        assert over.minutes_credited == 480
        assert over.base_points == pytest.approx(96.0)

    def test_monotone_in_minutes(self):
        points = [compute_session_points(make_context(minutes_active=m)).final_points for m in range(0, 600, 15)]
        assert points == sorted(points)

    def test_monotone_in_storage(self):
        points = [compute_session_points(make_context(storage_amount=s)).final_points for s in range(0, 800, 50)]
        assert points == sorted(points)

    def test_all_base_factors_multiply(self):
        reward = compute_session_points(make_context(
            storage_amount=600, stake_amount=10_000, human_checks_passed=6, human_checks_failed=4
        ))
        assert reward.base_points == pytest.approx(60 * 0.2 * 3.0 * 0.7 * 1.5)

    def test_difficulty_decays_over_season(self):
        early = compute_session_points(make_context(week_index=1))
        late = compute_session_points(make_context(week_index=16))
        assert late.difficulty == pytest.approx(0.2)
        assert late.final_points == pytest.approx(early.final_points * 0.2)

    def test_paid_boost_ignored_without_reference_time(self):
        ctx = make_context(paid_boost=PaidBoostState('skr_ultra', NOW + timedelta(days=1)))
        assert compute_session_points(ctx).paid_boost_multiplier == 1.0

    def test_breakdown_keys(self):
        reward = compute_session_points(make_context(referral_count=10))
        breakdown = reward.breakdown()
        assert set(breakdown) == {'storage', 'stake', 'human', 'social', 'paid_boost', 'holder', 'difficulty', 'total'}
        assert breakdown['social'] == pytest.approx(1.10)


# ============================================================================
# Boost composition
# ============================================================================

class TestComposition:

    def test_multiplicative_shape(self):
        composed = compose_multiplier(0.2, 1.5, 1.0, BoostComposition.MULTIPLICATIVE)
        assert composed.raw == pytest.approx(1.2 * 1.5)

    def test_additive_shape(self):
        composed = compose_multiplier(0.2, 1.5, 1.0, BoostComposition.ADDITIVE)
        assert composed.raw == pytest.approx(1.7)

    def test_shapes_differ_for_same_inputs(self):
        social, paid = 0.4, 2.0
        multiplicative = compose_multiplier(social, paid, 1.0, BoostComposition.MULTIPLICATIVE)
        additive = compose_multiplier(social, paid, 1.0, BoostComposition.ADDITIVE)
        assert multiplicative.raw == pytest.approx(2.8)
        assert additive.raw == pytest.approx(2.4)

    @pytest.mark.parametrize("composition", list(BoostComposition))
    def test_cap_on_composed_value(self, composition):
        """Holder x strongest paid boost x max social saturates at the cap"""
        ctx = make_context(
            referral_count=100, daily_task_bonus=1.0, is_holder=True,
            paid_boost=PaidBoostState('skr_ultra', NOW + timedelta(days=1)), now=NOW
        )
        reward = compute_session_points(ctx, composition)
        assert reward.raw_multiplier > 6.0
        assert reward.applied_multiplier == 6.0
        assert reward.cap_triggered
        assert reward.final_points == pytest.approx(reward.base_points * 6.0)

    def test_cap_never_exceeded(self):
        for referrals in (0, 10, 40):
            for task in (0.0, 0.1, 0.5):
                for boost_id in (None, 'skr_lite', 'skr_pro', 'skr_ultra'):
                    for holder in (False, True):
                        ctx = make_context(
                            referral_count=referrals, daily_task_bonus=task, is_holder=holder,
                            paid_boost=PaidBoostState(boost_id, NOW + timedelta(days=1)), now=NOW
                        )
                        for composition in BoostComposition:
                            reward = compute_session_points(ctx, composition)
                            assert reward.applied_multiplier <= 6.0
                            assert reward.final_points <= reward.base_points * 6.0 + 1e-9

    def test_exactly_at_cap_is_not_triggered(self):
        composed = compose_multiplier(0.0, 2.0, 3.0, BoostComposition.ADDITIVE)
        assert composed.raw == pytest.approx(6.0)
        assert not composed.cap_triggered


class TestForecast:

    def test_forecast_uses_multiplicative_shape_and_wide_task_cap(self):
        ctx = make_context(
            daily_task_bonus=0.25, paid_boost=PaidBoostState('skr_pro', NOW + timedelta(days=1))
        )
        reward = forecast_night(ctx, NOW)
        assert reward.social_boost == pytest.approx(0.25)
        assert reward.raw_multiplier == pytest.approx(1.25 * 1.5)

    def test_forecast_leaves_context_untouched(self):
        ctx = make_context()
        forecast_night(ctx, NOW)
        assert ctx.now is None


# ============================================================================
# Token allocation
# ============================================================================

class TestTokenAllocation:

    def test_balanced_split_has_no_loss(self):
        awards = allocate_tokens({'A': 300, 'B': 700}, 1_000)
        assert awards == {'A': 300, 'B': 700}
        assert sum(awards.values()) == 1_000

    def test_floor_loss_is_bounded(self):
        awards = allocate_tokens({'A': 100, 'B': 100, 'C': 101}, 10)
        assert awards == {'A': 3, 'B': 3, 'C': 3}
        assert sum(awards.values()) == 9

    def test_conservation_bound(self):
        wallet_points = {f'w{i}': (i * 37) % 101 + 1 for i in range(250)}
        pool = 44_642
        awards = allocate_tokens(wallet_points, pool)
        total = sum(awards.values())
        assert total <= pool
        assert pool - total < len(wallet_points)

    def test_degenerate_totals(self):
        assert tokens_for_wallet(10, 0, 1_000) == 0
        assert tokens_for_wallet(0, 100, 1_000) == 0
        assert tokens_for_wallet(-5, 100, 1_000) == 0
        assert tokens_for_wallet(150, 100, 1_000) == 0
        assert allocate_tokens({'A': 0, 'B': 0}, 1_000) == {'A': 0, 'B': 0}

    def test_float_points(self):
        assert tokens_for_wallet(12.5, 50.0, 1_000) == 250
