"""
test_liquidation.py - Liquidating unhealthy positions

alice holds 10 WETH against 100 DSC of debt. liz, the liquidator, finances
her DSC with a WBTC position so that an ETH crash does not touch her own
health factor.
"""

import pytest

from stablecoin import (
    CollateralRedeemed, DebtBurned,
    ZeroAmount, AssetNotAllowed, HealthFactorOk, HealthFactorNotImproved,
    HealthFactorBroken, BurnExceedsBalance, InsufficientCollateral,
    SyntheticTransferFailed, StaleOrInvalidPrice,
    MAX_HEALTH_FACTOR,
)
from tests.fake_tokens import rejected_with


ONE = 10**18


@pytest.fixture
def crashed(system, position, dsc_approval):
    """alice: 10 WETH / 100 DSC, ETH at $18 (health factor 0.9e18)."""
    position("alice", "WETH", 10 * ONE, 100 * ONE)
    position("liz", "WBTC", ONE, 100 * ONE)
    dsc_approval("liz", 100 * ONE)
    system.eth_feed.update_answer(18 * 10**8)
    return system


class TestLiquidationPreconditions:

    def test_healthy_account_cannot_be_liquidated(self, engine, position, dsc_approval):
        position("alice")
        position("liz", "WBTC", ONE, 100 * ONE)
        dsc_approval("liz", 100 * ONE)
        result = engine.liquidate("liz", "WETH", "alice", 10 * ONE)

        assert rejected_with(result, HealthFactorOk)
        assert result.error.health_factor == 100 * ONE

    def test_account_without_debt(self, engine, funded):
        funded("alice")
        engine.deposit_collateral("alice", "WETH", ONE).unwrap()
        result = engine.liquidate("liz", "WETH", "alice", ONE)
        assert rejected_with(result, HealthFactorOk)
        assert result.error.health_factor == MAX_HEALTH_FACTOR

    def test_zero_and_unknown(self, crashed):
        engine = crashed.engine
        assert rejected_with(engine.liquidate("liz", "WETH", "alice", 0), ZeroAmount)
        assert rejected_with(engine.liquidate("liz", "XYZ", "alice", ONE), AssetNotAllowed)


class TestLiquidation:

    def test_health_factor_after_crash(self, crashed):
        engine = crashed.engine
        assert engine.account_collateral_value("alice") == 180 * ONE
        assert engine.health_factor("alice") == 9 * 10**17

    def test_full_liquidation(self, crashed):
        engine, weth, dsc = crashed.engine, crashed.weth, crashed.dsc
        result = engine.liquidate("liz", "WETH", "alice", 100 * ONE)

        token_amount = 5555555555555555555
        bonus = 555555555555555555
        assert result.ok
        assert result.events == (
            CollateralRedeemed("alice", "liz", "WETH", token_amount + bonus),
            DebtBurned("alice", "liz", 100 * ONE),
        )
        assert weth.balance_of("liz") == token_amount + bonus
        assert engine.collateral_balance("alice", "WETH") == 10 * ONE - token_amount - bonus
        assert engine.debt_of("alice") == 0
        assert engine.health_factor("alice") == MAX_HEALTH_FACTOR
        # liz paid with her own DSC; her debt is untouched
        assert dsc.balance_of("liz") == 0
        assert engine.debt_of("liz") == 100 * ONE
        assert dsc.total_supply() == 100 * ONE

    def test_partial_liquidation_improves(self, crashed):
        engine = crashed.engine
        starting = engine.health_factor("alice")
        assert engine.liquidate("liz", "WETH", "alice", 50 * ONE).ok

        assert engine.debt_of("alice") == 50 * ONE
        assert engine.health_factor("alice") > starting
        assert engine.health_factor("alice") == 1250000000000000000

    def test_liquidation_that_does_not_improve(self, system, position, dsc_approval):
        position("alice", "WETH", 10 * ONE, 100 * ONE)
        position("liz", "WBTC", ONE, 100 * ONE)
        dsc_approval("liz", 100 * ONE)
        # $10: 10 WETH back 50 of 100 debt; the bonus makes partial cover worse
        system.eth_feed.update_answer(10 * 10**8)
        result = system.engine.liquidate("liz", "WETH", "alice", 50 * ONE)

        assert rejected_with(result, HealthFactorNotImproved)
        assert result.error.starting == 5 * 10**17
        assert result.error.ending == 45 * 10**16
        assert system.engine.debt_of("alice") == 100 * ONE
        assert system.weth.balance_of("liz") == 0

    def test_seizure_above_collateral_fails(self, system, position, dsc_approval):
        position("alice", "WETH", 10 * ONE, 100 * ONE)
        position("liz", "WBTC", ONE, 100 * ONE)
        dsc_approval("liz", 100 * ONE)
        system.eth_feed.update_answer(10 * 10**8)
        # 10 WETH + 1 WETH bonus > 10 WETH held
        result = system.engine.liquidate("liz", "WETH", "alice", 100 * ONE)

        assert rejected_with(result, InsufficientCollateral)
        assert result.error.amount == 11 * ONE
        assert system.engine.collateral_balance("alice", "WETH") == 10 * ONE

    def test_cover_above_debt_fails(self, crashed, dsc_approval):
        dsc_approval("liz", 101 * ONE)
        result = crashed.engine.liquidate("liz", "WETH", "alice", 100 * ONE + 1)
        assert rejected_with(result, BurnExceedsBalance)
        assert crashed.engine.debt_of("alice") == 100 * ONE

    def test_liquidator_without_dsc_approval(self, crashed, dsc_approval):
        dsc_approval("liz", 0)
        result = crashed.engine.liquidate("liz", "WETH", "alice", 100 * ONE)

        assert rejected_with(result, SyntheticTransferFailed)
        assert crashed.weth.balance_of("liz") == 0
        assert crashed.engine.collateral_balance("alice", "WETH") == 10 * ONE

    def test_unhealthy_liquidator_rejected(self, crashed):
        # liz's own WBTC collateral crashes too: $150 backs 100 debt at 50%
        crashed.btc_feed.update_answer(150 * 10**8)
        result = crashed.engine.liquidate("liz", "WETH", "alice", 100 * ONE)

        assert rejected_with(result, HealthFactorBroken)
        assert crashed.engine.debt_of("alice") == 100 * ONE
        assert crashed.dsc.balance_of("liz") == 100 * ONE

    def test_stale_price_blocks_liquidation(self, crashed):
        crashed.host.advance_time(crashed.host.current_time + crashed.oracle.timeout * 2)
        result = crashed.engine.liquidate("liz", "WETH", "alice", 100 * ONE)
        assert rejected_with(result, StaleOrInvalidPrice)

    def test_self_liquidation(self, system, position, dsc_approval):
        position("alice", "WETH", 10 * ONE, 100 * ONE)
        position("alice", "WBTC", ONE, 100 * ONE)
        dsc_approval("alice", 200 * ONE)
        system.eth_feed.update_answer(18 * 10**8)
        system.btc_feed.update_answer(150 * 10**8)
        # collateral $180 + $150 backs 200 debt at 50%: health factor 0.825
        assert system.engine.health_factor("alice") == 825 * 10**15

        result = system.engine.liquidate("alice", "WBTC", "alice", 10 * ONE)
        assert rejected_with(result, HealthFactorBroken)
