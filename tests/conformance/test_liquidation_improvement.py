"""
Liquidation Conformance Tests

INVARIANT: An applied liquidation strictly improves the target's health
factor, pays the liquidator exactly token_amount + bonus, and reduces the
target's debt by exactly debt_to_cover.
"""

from hypothesis import given, settings, assume, note
from hypothesis import strategies as st

from stablecoin import MIN_HEALTH_FACTOR, liquidation_quote
from tests.harness import build_system, open_position, ONE


class TestLiquidationProperties:

    @given(
        st.integers(min_value=10 * ONE, max_value=10_000 * ONE),
        st.integers(min_value=1, max_value=1999),
        st.integers(min_value=1, max_value=10_000 * ONE),
    )
    @settings(max_examples=150, deadline=None)
    def test_applied_liquidation_improves_target(self, debt, eth_price, debt_to_cover):
        system = build_system()
        engine = system.engine
        open_position(system, "alice", "WETH", 10 * ONE, debt)
        open_position(system, "liz", "WBTC", 100 * ONE, 10_000 * ONE)
        system.dsc.approve("liz", engine.address, 10_000 * ONE)

        system.eth_feed.update_answer(eth_price * 10**8)
        starting = engine.health_factor("alice")
        assume(starting < MIN_HEALTH_FACTOR)

        collateral_before = engine.collateral_balance("alice", "WETH")
        result = engine.liquidate("liz", "WETH", "alice", debt_to_cover)
        note(repr(result))
        if not result.ok:
            return

        quote = liquidation_quote(eth_price * ONE, debt_to_cover)
        assert engine.health_factor("alice") > starting
        assert engine.debt_of("alice") == debt - debt_to_cover
        assert engine.collateral_balance("alice", "WETH") == collateral_before - quote.total_seized
        assert system.weth.balance_of("liz") == quote.total_seized

    @given(st.integers(min_value=1, max_value=2000 * ONE))
    @settings(max_examples=50, deadline=None)
    def test_healthy_accounts_are_never_liquidated(self, debt_to_cover):
        system = build_system()
        open_position(system, "alice", "WETH", 10 * ONE, 10_000 * ONE)
        open_position(system, "liz", "WBTC", 100 * ONE, 10_000 * ONE)
        system.dsc.approve("liz", system.engine.address, 10_000 * ONE)

        result = system.engine.liquidate("liz", "WETH", "alice", debt_to_cover)
        assert not result.ok
        assert system.engine.debt_of("alice") == 10_000 * ONE
