"""
test_deposit_mint.py - Depositing collateral and minting the synthetic asset

Tests:
- deposit_collateral: custody transfer, events, input errors, transfer failures
- mint: health-factor gate, events, oracle failures, minting failures
- deposit_and_mint: both steps or neither
"""

import pytest
from datetime import timedelta

from stablecoin import (
    ExecuteResult, CollateralDeposited, DebtMinted,
    ZeroAmount, AssetNotAllowed, CollateralTransferFailed, HealthFactorBroken,
    MintingFailed, StaleOrInvalidPrice, MIN_HEALTH_FACTOR, ORACLE_TIMEOUT,
)
from tests.fake_tokens import FailingToken, FailingSyntheticAsset, rejected_with
from tests.harness import build_system, fund, T0


ONE = 10**18


class TestDepositCollateral:

    def test_deposit_moves_tokens_into_custody(self, engine, weth, funded):
        funded("alice", amount=10 * ONE)
        result = engine.deposit_collateral("alice", "WETH", 10 * ONE)

        assert result.ok
        assert result.status == ExecuteResult.APPLIED
        assert result.events == (CollateralDeposited("alice", "WETH", 10 * ONE),)
        assert engine.collateral_balance("alice", "WETH") == 10 * ONE
        assert weth.balance_of("alice") == 0
        assert weth.balance_of(engine.address) == 10 * ONE
        assert engine.events == [CollateralDeposited("alice", "WETH", 10 * ONE)]

    def test_deposit_value(self, engine, funded):
        funded("alice", amount=15 * ONE)
        engine.deposit_collateral("alice", "WETH", 15 * ONE).unwrap()
        assert engine.account_collateral_value("alice") == 30000 * ONE

    def test_deposits_accumulate_across_assets(self, engine, funded):
        funded("alice", "WETH", 2 * ONE)
        funded("alice", "WBTC", 3 * ONE)
        engine.deposit_collateral("alice", "WETH", ONE).unwrap()
        engine.deposit_collateral("alice", "WETH", ONE).unwrap()
        engine.deposit_collateral("alice", "WBTC", 3 * ONE).unwrap()

        assert engine.collateral_balance("alice", "WETH") == 2 * ONE
        assert engine.collateral_balance("alice", "WBTC") == 3 * ONE
        assert engine.account_collateral_value("alice") == 7000 * ONE
        assert engine.accounts() == {"alice"}

    @pytest.mark.parametrize("amount", [0, -1])
    def test_zero_amount(self, engine, funded, amount):
        funded("alice")
        result = engine.deposit_collateral("alice", "WETH", amount)
        assert rejected_with(result, ZeroAmount)
        assert result.events == ()

    def test_unknown_asset(self, engine, funded):
        funded("alice")
        result = engine.deposit_collateral("alice", "XYZ", ONE)
        assert rejected_with(result, AssetNotAllowed)
        assert result.error.asset == "XYZ"

    def test_missing_allowance_rolls_back(self, engine, weth):
        weth.mint_to("alice", ONE)
        result = engine.deposit_collateral("alice", "WETH", ONE)

        assert rejected_with(result, CollateralTransferFailed)
        assert engine.collateral_balance("alice", "WETH") == 0
        assert engine.events == []
        assert engine.accounts() == set()
        assert weth.balance_of("alice") == ONE

    def test_insufficient_balance_rolls_back(self, engine, weth, funded):
        funded("alice", amount=ONE)
        weth.approve("alice", engine.address, 2 * ONE)
        result = engine.deposit_collateral("alice", "WETH", 2 * ONE)

        assert rejected_with(result, CollateralTransferFailed)
        assert engine.collateral_balance("alice", "WETH") == 0
        assert weth.allowance("alice", engine.address) == 2 * ONE

    def test_token_reporting_failure(self):
        system = build_system(weth_cls=FailingToken)
        fund(system, "alice")
        system.weth.fail_transfer_from = True

        result = system.engine.deposit_collateral("alice", "WETH", ONE)
        assert rejected_with(result, CollateralTransferFailed)
        assert system.engine.collateral_balance("alice", "WETH") == 0

    def test_deposit_ignores_stale_oracle(self, engine, host, funded):
        funded("alice")
        host.advance_time(T0 + ORACLE_TIMEOUT + timedelta(hours=1))
        assert engine.deposit_collateral("alice", "WETH", ONE).ok

    def test_non_int_amount_raises(self, engine, funded):
        funded("alice")
        with pytest.raises(TypeError):
            engine.deposit_collateral("alice", "WETH", 1.5)
        assert engine.collateral_balance("alice", "WETH") == 0


class TestMint:

    def test_mint_after_deposit(self, engine, dsc, funded):
        funded("alice")
        engine.deposit_collateral("alice", "WETH", 10 * ONE).unwrap()
        result = engine.mint("alice", 100 * ONE)

        assert result.ok
        assert result.events == (DebtMinted("alice", 100 * ONE),)
        assert engine.debt_of("alice") == 100 * ONE
        assert dsc.balance_of("alice") == 100 * ONE
        assert engine.health_factor("alice") == 100 * ONE

    def test_mint_up_to_boundary(self, engine, funded):
        funded("alice")
        engine.deposit_collateral("alice", "WETH", 10 * ONE).unwrap()
        assert engine.mint("alice", 10000 * ONE).ok
        assert engine.health_factor("alice") == MIN_HEALTH_FACTOR

    def test_mint_past_boundary_rejected(self, engine, dsc, funded):
        funded("alice")
        engine.deposit_collateral("alice", "WETH", 10 * ONE).unwrap()
        result = engine.mint("alice", 10000 * ONE + 1)

        assert rejected_with(result, HealthFactorBroken)
        assert result.error.health_factor == MIN_HEALTH_FACTOR - 1
        assert engine.debt_of("alice") == 0
        assert dsc.total_supply() == 0

    def test_mint_without_collateral(self, engine):
        result = engine.mint("alice", 1)
        assert rejected_with(result, HealthFactorBroken)
        assert result.error.health_factor == 0

    def test_zero_mint(self, engine):
        assert rejected_with(engine.mint("alice", 0), ZeroAmount)

    def test_stale_price_rejects_mint(self, engine, host, funded):
        funded("alice")
        engine.deposit_collateral("alice", "WETH", 10 * ONE).unwrap()
        host.advance_time(T0 + ORACLE_TIMEOUT + timedelta(seconds=1))

        result = engine.mint("alice", ONE)
        assert rejected_with(result, StaleOrInvalidPrice)
        assert engine.debt_of("alice") == 0

    def test_minting_failure_rolls_back(self):
        system = build_system(dsc_cls=FailingSyntheticAsset)
        fund(system, "alice")
        system.engine.deposit_collateral("alice", "WETH", 10 * ONE).unwrap()
        system.dsc.fail_mint = True

        result = system.engine.mint("alice", ONE)
        assert rejected_with(result, MintingFailed)
        assert system.engine.debt_of("alice") == 0
        assert system.engine.health_factor("alice") > MIN_HEALTH_FACTOR


class TestDepositAndMint:

    def test_both_steps(self, engine, dsc, weth, funded):
        funded("alice")
        result = engine.deposit_and_mint("alice", "WETH", 10 * ONE, 100 * ONE)

        assert result.ok
        assert result.operation == "deposit_and_mint"
        assert result.events == (
            CollateralDeposited("alice", "WETH", 10 * ONE),
            DebtMinted("alice", 100 * ONE),
        )
        assert engine.account_information("alice").health_factor == 100 * ONE
        assert dsc.balance_of("alice") == 100 * ONE
        assert weth.balance_of(engine.address) == 10 * ONE

    def test_unhealthy_mint_undoes_deposit(self, engine, weth, funded):
        funded("alice")
        result = engine.deposit_and_mint("alice", "WETH", 10 * ONE, 20000 * ONE)

        assert rejected_with(result, HealthFactorBroken)
        assert engine.collateral_balance("alice", "WETH") == 0
        assert weth.balance_of("alice") == 10 * ONE
        assert weth.allowance("alice", engine.address) == 10 * ONE
        assert engine.events == []

    def test_verbose_output(self, capsys):
        system = build_system(verbose=True)
        fund(system, "alice")
        system.engine.deposit_and_mint("alice", "WETH", ONE, ONE)
        system.engine.mint("alice", 10**30)
        out = capsys.readouterr().out
        assert "✓ APPLIED deposit_and_mint [alice]" in out
        assert "✗ REJECTED mint [alice]: HealthFactorBroken" in out
