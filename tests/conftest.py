"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit and functional tests:
- A wired system (host ledger, WETH/WBTC, price feeds, oracle, engine)
- Shortcuts to its parts
- Helpers to fund wallets and open positions
"""

import pytest

from tests.harness import System, build_system, fund, approve_dsc, open_position


@pytest.fixture
def system() -> System:
    """Engine with WETH ($2000) and WBTC ($1000) collateral."""
    return build_system()


@pytest.fixture
def host(system):
    return system.host


@pytest.fixture
def engine(system):
    return system.engine


@pytest.fixture
def weth(system):
    return system.weth


@pytest.fixture
def wbtc(system):
    return system.wbtc


@pytest.fixture
def dsc(system):
    return system.dsc


@pytest.fixture
def eth_feed(system):
    return system.eth_feed


@pytest.fixture
def funded(system):
    """Callable: funded(user, asset="WETH", amount=10e18)."""
    def _fund(user, asset="WETH", amount=10 * 10**18):
        fund(system, user, asset, amount)
    return _fund


@pytest.fixture
def position(system):
    """Callable: position(user, asset="WETH", collateral=10e18, debt=100e18)."""
    def _open(user, asset="WETH", collateral=10 * 10**18, debt=100 * 10**18):
        open_position(system, user, asset, collateral, debt)
    return _open


@pytest.fixture
def dsc_approval(system):
    """Callable: dsc_approval(user, amount) approves the engine to pull DSC."""
    def _approve(user, amount):
        approve_dsc(system, user, amount)
    return _approve
