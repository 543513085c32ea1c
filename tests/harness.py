"""
harness.py - Builds a wired engine for tests

build_system() returns a host ledger with WETH and WBTC collateral, 8-decimal
static price feeds ($2000 and $1000), the synthetic asset owned by the
engine, and the engine itself. Token classes can be swapped for fakes.

Plain functions instead of fixtures, so hypothesis tests can build a fresh
system per example.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime

from stablecoin import (
    Ledger, CollateralToken, SyntheticAsset,
    StaticPriceFeed, PriceOracle, CollateralEngine,
)


T0 = datetime(2024, 1, 1)
ETH_FEED = "ETH/USD"
BTC_FEED = "BTC/USD"
ETH_USD = 2000 * 10**8
BTC_USD = 1000 * 10**8
ENGINE = "engine"
DEPLOYER = "deployer"

ONE = 10**18


@dataclass
class System:
    host: Ledger
    weth: CollateralToken
    wbtc: CollateralToken
    dsc: SyntheticAsset
    eth_feed: StaticPriceFeed
    btc_feed: StaticPriceFeed
    oracle: PriceOracle
    engine: CollateralEngine


def build_system(
    weth_cls=CollateralToken,
    wbtc_cls=CollateralToken,
    dsc_cls=SyntheticAsset,
    verbose: bool = False,
) -> System:
    host = Ledger("host", initial_time=T0)
    weth = weth_cls(host, "WETH", "Wrapped Ether")
    wbtc = wbtc_cls(host, "WBTC", "Wrapped Bitcoin")
    dsc = dsc_cls(host, owner=DEPLOYER)

    eth_feed = StaticPriceFeed(host, ETH_USD)
    btc_feed = StaticPriceFeed(host, BTC_USD)
    oracle = PriceOracle({ETH_FEED: eth_feed, BTC_FEED: btc_feed}, host)

    engine = CollateralEngine(
        host, [weth, wbtc], [ETH_FEED, BTC_FEED], dsc, oracle,
        address=ENGINE, verbose=verbose,
    )
    dsc.transfer_ownership(DEPLOYER, engine.address)
    return System(host, weth, wbtc, dsc, eth_feed, btc_feed, oracle, engine)


def fund(system: System, user: str, asset: str = "WETH", amount: int = 10 * ONE) -> None:
    """Give user amount of asset and add amount to the engine's allowance."""
    token = system.engine.collateral_token(asset)
    token.mint_to(user, amount)
    token.approve(user, system.engine.address, token.allowance(user, system.engine.address) + amount)


def approve_dsc(system: System, user: str, amount: int) -> None:
    system.dsc.approve(user, system.engine.address, amount)


def open_position(
    system: System,
    user: str,
    asset: str = "WETH",
    collateral: int = 10 * ONE,
    debt: int = 100 * ONE,
) -> None:
    """Fund user, deposit collateral and mint debt; raises if rejected."""
    fund(system, user, asset, collateral)
    system.engine.deposit_and_mint(user, asset, collateral, debt).unwrap()
