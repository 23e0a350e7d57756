"""Plan table and credit arithmetic tests"""
import pytest
from unittest.mock import patch

from billing.core.config import settings
from billing.services.plan_service import (
    PlanDescriptor,
    UnknownPriceError,
    assert_known_price_id,
    calculate_rollover_grant,
    calculate_trial_conversion_credits,
    calculate_upgrade_credits,
    get_plans,
    reload_plans,
    resolve_plan,
)
from stripe_payloads import HOBBY_PRICE_ID, PRO_PRICE_ID, BUSINESS_PRICE_ID, UNKNOWN_PRICE_ID


@pytest.mark.high
class TestResolvePlan:
    """Test price id lookup"""

    def test_resolves_every_configured_price(self):
        """Every plan in the table resolves from its own price id"""
        for plan in get_plans().values():
            assert resolve_plan(plan.price_id) == plan

    def test_pro_plan_descriptor(self):
        plan = resolve_plan(PRO_PRICE_ID)
        assert plan.key == "pro"
        assert plan.name == "Professional"
        assert plan.credits_per_month == 1000
        assert plan.max_rollover == 6000

    def test_rollover_cap_is_six_months_of_credits(self):
        assert resolve_plan(HOBBY_PRICE_ID).max_rollover == 1200
        assert resolve_plan(BUSINESS_PRICE_ID).max_rollover == 30000

    @pytest.mark.parametrize("price_id", [UNKNOWN_PRICE_ID, "", None])
    def test_unknown_price_is_none(self, price_id):
        """Unknown price ids never fall back to a default plan"""
        assert resolve_plan(price_id) is None

    def test_assert_known_price_id_raises_for_unknown(self):
        with pytest.raises(UnknownPriceError):
            assert_known_price_id(UNKNOWN_PRICE_ID)

    def test_assert_known_price_id_returns_plan(self):
        assert assert_known_price_id(HOBBY_PRICE_ID).key == "hobby"


@pytest.mark.critical
class TestRolloverGrant:
    """Test renewal grants against the rollover cap"""

    def test_full_grant_below_cap(self):
        plan = resolve_plan(PRO_PRICE_ID)
        assert calculate_rollover_grant(0, plan) == 1000
        assert calculate_rollover_grant(5000, plan) == 1000

    def test_grant_capped_near_limit(self):
        """5900 of 6000 leaves room for exactly 100 credits"""
        plan = resolve_plan(PRO_PRICE_ID)
        assert calculate_rollover_grant(5900, plan) == 100

    @pytest.mark.parametrize("balance", [6000, 6500, 100000])
    def test_zero_at_or_above_cap(self, balance):
        plan = resolve_plan(PRO_PRICE_ID)
        assert calculate_rollover_grant(balance, plan) == 0


@pytest.mark.medium
class TestUpgradeCredits:
    """Test plan change credit differences"""

    def test_upgrade_grants_difference(self):
        assert calculate_upgrade_credits(resolve_plan(HOBBY_PRICE_ID), resolve_plan(PRO_PRICE_ID)) == 800

    def test_downgrade_grants_nothing(self):
        assert calculate_upgrade_credits(resolve_plan(BUSINESS_PRICE_ID), resolve_plan(PRO_PRICE_ID)) == 0


@pytest.mark.medium
class TestTrialPlans:
    """Test trial configuration and the conversion top-up"""

    @pytest.fixture
    def trial_settings(self):
        def configure(plans, credits):
            for name, value in (('TRIAL_ENABLED_PLANS', plans), ('TRIAL_CREDITS', credits)):
                patcher = patch.object(settings, name, value)
                patcher.start()
                patchers.append(patcher)
            reload_plans()

        patchers = []
        yield configure
        for patcher in reversed(patchers):
            patcher.stop()
        reload_plans()

    def test_trials_disabled_by_default(self):
        assert all(plan.trial_credits is None for plan in get_plans().values())

    def test_full_month_trial(self, trial_settings):
        trial_settings(['pro'], 0)

        plans = get_plans()
        assert plans["pro"].trial_credits == 1000
        assert plans["pro"].trial_topped_up_on_conversion is False
        assert plans["hobby"].trial_credits is None

    def test_custom_trial_credits(self, trial_settings):
        trial_settings(['pro', 'business'], 150)

        plans = get_plans()
        assert plans["pro"].trial_credits == 150
        assert plans["business"].trial_credits == 150
        assert plans["business"].trial_topped_up_on_conversion is True

    def test_conversion_tops_up_to_one_month(self):
        plan = PlanDescriptor("pro", "Professional", PRO_PRICE_ID, 1000, 6000, trial_credits=150, trial_topped_up_on_conversion=True)

        assert calculate_trial_conversion_credits(150, plan) == 850
        assert calculate_trial_conversion_credits(40, plan) == 960
        assert calculate_trial_conversion_credits(1200, plan) == 0

    def test_full_month_trial_gets_no_top_up(self):
        plan = PlanDescriptor("pro", "Professional", PRO_PRICE_ID, 1000, 6000, trial_credits=1000)

        assert calculate_trial_conversion_credits(0, plan) == 0
