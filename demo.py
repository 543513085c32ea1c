#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: The Collateral Engine Step by Step

A pedagogical walkthrough of the over-collateralized stable-asset engine.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup        - Host ledger, tokens, price feeds, wiring the engine
  4-6:  Positions    - Valuation, deposit and mint, the health factor
  7-9:  Liquidation  - Price crash, liquidation, conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from stablecoin import (
    # Host ledger and tokens
    Ledger, CollateralToken, SyntheticAsset,
    # Pricing
    StaticPriceFeed, PriceOracle,
    # Engine
    CollateralEngine,
    # Helpers and constants
    to_wad, from_wad, SYSTEM_WALLET, MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Feed answers use 8 decimals
    eth_usd: int = 2000 * 10**8
    btc_usd: int = 1000 * 10**8
    crash_eth_usd: int = 18 * 10**8

    alice_collateral: int = to_wad("10")
    alice_debt: int = to_wad("100")
    liz_collateral: int = to_wad("1")
    liz_debt: int = to_wad("100")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def wad(value: int) -> str:
    """Format a wad amount for display."""
    if value == MAX_HEALTH_FACTOR:
        return "∞"
    return f"{from_wad(value):,.6f}"


# ============================================================================
# PHASE 1: SETUP (Steps 1-3)
# ============================================================================

def step_01_host_and_tokens():
    """Create the host ledger and the tokens living on it."""
    step_header(1, "Host Ledger and Tokens",
        "Every token balance lives on one double-entry host ledger.")

    print("""
    The host ledger holds balances for every token: the collateral tokens
    (WETH, WBTC) and the synthetic asset (DSC). New tokens enter through
    the SYSTEM wallet, so the balances of each unit always sum to zero.
    """)

    wait_for_enter()

    host = Ledger("host", initial_time=CONFIG.start_time, verbose=True)
    weth = CollateralToken(host, "WETH", "Wrapped Ether")
    wbtc = CollateralToken(host, "WBTC", "Wrapped Bitcoin")
    dsc = SyntheticAsset(host, owner="deployer")

    section_header("Funding wallets")
    weth.mint_to("alice", CONFIG.alice_collateral)
    wbtc.mint_to("liz", CONFIG.liz_collateral)
    print(f"alice WETH:  {wad(weth.balance_of('alice'))}")
    print(f"liz WBTC:    {wad(wbtc.balance_of('liz'))}")
    print(f"system WETH: {wad(host.get_balance(SYSTEM_WALLET, 'WETH'))}")

    return host, weth, wbtc, dsc


def step_02_price_feeds(host: Ledger):
    """Create price feeds and the staleness-checking oracle."""
    step_header(2, "Price Feeds and the Oracle",
        "Prices come from feeds; the oracle rejects stale or invalid answers.")

    print("""
    Feeds answer in USD with 8 decimals. The oracle scales answers to 18
    decimals and refuses any answer older than 3 hours (host ledger time).
    """)

    wait_for_enter()

    eth_feed = StaticPriceFeed(host, CONFIG.eth_usd)
    btc_feed = StaticPriceFeed(host, CONFIG.btc_usd)
    oracle = PriceOracle({"ETH/USD": eth_feed, "BTC/USD": btc_feed}, host)

    price, updated_at = oracle.latest_price("ETH/USD")
    print(f"ETH/USD: {wad(price)} (updated {updated_at})")

    return eth_feed, btc_feed, oracle


def step_03_wire_engine(host, weth, wbtc, dsc, oracle):
    """Create the engine and hand it the mint/burn capability."""
    step_header(3, "Wiring the Engine",
        "The engine's registry is fixed, and only the engine can mint DSC.")

    wait_for_enter()

    engine = CollateralEngine(
        host, [weth, wbtc], ["ETH/USD", "BTC/USD"], dsc, oracle, verbose=True,
    )
    dsc.transfer_ownership("deployer", engine.address)

    print(f"Collateral assets: {engine.collateral_assets}")
    print(f"DSC owner:         {dsc.owner}")
    return engine


# ============================================================================
# PHASE 2: POSITIONS (Steps 4-6)
# ============================================================================

def step_04_valuation(engine: CollateralEngine):
    """Convert between token amounts and USD."""
    step_header(4, "Valuation",
        "USD value = price * amount / 1e18, computed in integers.")

    wait_for_enter()

    print(f"15 WETH   -> ${wad(engine.usd_value('WETH', to_wad('15')))}")
    print(f"$30,000   -> {wad(engine.token_amount_from_usd('WETH', to_wad('30000')))} WETH")


def step_05_deposit_and_mint(engine: CollateralEngine, weth, wbtc):
    """Open positions for alice and liz."""
    step_header(5, "Deposit and Mint",
        "Collateral is pulled with an allowance; minting checks the health factor.")

    wait_for_enter()

    weth.approve("alice", engine.address, CONFIG.alice_collateral)
    engine.deposit_and_mint("alice", "WETH", CONFIG.alice_collateral, CONFIG.alice_debt)

    wbtc.approve("liz", engine.address, CONFIG.liz_collateral)
    engine.deposit_and_mint("liz", "WBTC", CONFIG.liz_collateral, CONFIG.liz_debt)

    section_header("Too greedy")
    result = engine.mint("alice", to_wad("10000"))
    print(f"Result: {result!r}")


def step_06_health_factor(engine: CollateralEngine):
    """Inspect account information."""
    step_header(6, "The Health Factor",
        "Only 50% of collateral value backs debt; below 1.0 an account is liquidatable.")

    wait_for_enter()

    for user in ("alice", "liz"):
        info = engine.account_information(user)
        print(f"{user:6} debt={wad(info.total_debt):>14} "
              f"collateral=${wad(info.collateral_value_usd):>16} "
              f"health={wad(info.health_factor)}")


# ============================================================================
# PHASE 3: LIQUIDATION (Steps 7-9)
# ============================================================================

def step_07_crash(engine: CollateralEngine, host: Ledger, eth_feed):
    """ETH crashes and alice becomes liquidatable."""
    step_header(7, "Price Crash",
        "A lower price lowers the health factor; the engine does not act on its own.")

    wait_for_enter()

    host.advance_time(host.current_time + timedelta(hours=1))
    eth_feed.update_answer(CONFIG.crash_eth_usd)

    hf = engine.health_factor("alice")
    print(f"alice collateral value: ${wad(engine.account_collateral_value('alice'))}")
    print(f"alice health factor:    {wad(hf)} (minimum {wad(MIN_HEALTH_FACTOR)})")

    section_header("alice cannot redeem")
    engine.redeem_collateral("alice", "WETH", 1)


def step_08_liquidate(engine: CollateralEngine, dsc, weth):
    """liz repays alice's debt and receives collateral plus a bonus."""
    step_header(8, "Liquidation",
        "The liquidator pays the debt and receives its worth in collateral plus 10%.")

    wait_for_enter()

    dsc.approve("liz", engine.address, CONFIG.alice_debt)
    result = engine.liquidate("liz", "WETH", "alice", CONFIG.alice_debt)
    for event in result.events:
        print(f"  {event}")

    print(f"\nliz received:       {wad(weth.balance_of('liz'))} WETH")
    print(f"alice debt:         {wad(engine.debt_of('alice'))}")
    print(f"alice health:       {wad(engine.health_factor('alice'))}")
    print(f"alice collateral:   {wad(engine.collateral_balance('alice', 'WETH'))} WETH")


def step_09_conservation(engine: CollateralEngine, host: Ledger, dsc):
    """Prove that bookkeeping matches the tokens."""
    step_header(9, "Conservation",
        "DSC supply equals recorded debt; every host unit sums to zero.")

    wait_for_enter()

    report = host.verify_double_entry()
    print(f"DSC supply:      {wad(dsc.total_supply())}")
    print(f"Total debt:      {wad(engine.total_debt())}")
    print(f"Double entry:    {'valid' if report['valid'] else report['discrepancies']}")
    print(f"Engine events:   {len(engine.events)}")
    print(f"Host tx log:     {len(host.transaction_log)} transactions")


def main():
    print("""
    ╔══════════════════════════════════════════════════════════════════╗
    ║           OVER-COLLATERALIZED STABLE-ASSET ENGINE TUTORIAL         ║
    ╚══════════════════════════════════════════════════════════════════╝
    """)

    host, weth, wbtc, dsc = step_01_host_and_tokens()
    eth_feed, _, oracle = step_02_price_feeds(host)
    engine = step_03_wire_engine(host, weth, wbtc, dsc, oracle)

    step_04_valuation(engine)
    step_05_deposit_and_mint(engine, weth, wbtc)
    step_06_health_factor(engine)

    step_07_crash(engine, host, eth_feed)
    step_08_liquidate(engine, dsc, weth)
    step_09_conservation(engine, host, dsc)

    print("""
    WHAT YOU LEARNED

    SETUP
      - One host ledger holds every token balance
      - The oracle rejects stale or non-positive prices
      - Only the engine can mint or burn the synthetic asset

    POSITIONS
      - Collateral is valued in integer fixed point (1e18)
      - Minting is refused when the health factor would drop below 1.0

    LIQUIDATION
      - Anyone can repay an unhealthy account's debt
      - The liquidator receives the debt's worth in collateral plus 10%
      - Every operation is all-or-nothing

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
