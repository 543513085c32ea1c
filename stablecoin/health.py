"""
health.py - Fixed-point collateral and health-factor math

PURE FUNCTIONS - all inputs explicit, no engine, no oracle, no hidden state.
The collateral engine loads balances and prices once, then calls these.

Every formula multiplies before it divides so integer truncation only
happens once, at the end:

    usd_value     = price * amount / PRECISION
    token_amount  = usd_amount * PRECISION / price
    adjusted      = collateral_value * LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION
    health_factor = adjusted * PRECISION / total_debt      (MAX if no debt)
    bonus         = token_amount * LIQUIDATION_BONUS / LIQUIDATION_PRECISION

Prices are USD per whole token on the 18-decimal scale (see normalize_price).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Mapping

from .core import (
    PRECISION, FEED_DECIMALS, ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD, LIQUIDATION_BONUS, LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
)

# Number of decimals of PRECISION.
_WAD_DECIMALS = 18


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """
    Collateral a liquidator receives for covering debt.

    Attributes:
        debt_to_cover: Synthetic-asset amount the liquidator repays.
        token_amount: Collateral worth exactly debt_to_cover.
        bonus: LIQUIDATION_BONUS percent of token_amount.
        total_seized: token_amount + bonus, taken from the target's collateral.
    """
    debt_to_cover: int
    token_amount: int
    bonus: int
    total_seized: int


def normalize_price(answer: int, decimals: int = FEED_DECIMALS) -> int:
    """
    Scale a feed answer to the 18-decimal fixed-point scale.

    Example:
        normalize_price(2000 * 10**8, 8)  -> 2000 * 10**18
    """
    if decimals == FEED_DECIMALS:
        return answer * ADDITIONAL_FEED_PRECISION
    if decimals <= _WAD_DECIMALS:
        return answer * 10 ** (_WAD_DECIMALS - decimals)
    return answer // 10 ** (decimals - _WAD_DECIMALS)


def usd_value(price: int, amount: int) -> int:
    """
    USD value (wad) of amount base units at price (wad per whole token).

    Example (price $2000, 15 tokens):
        usd_value(2000 * 10**18, 15 * 10**18)  -> 30000 * 10**18
    """
    return price * amount // PRECISION


def token_amount_from_usd(price: int, usd_amount: int) -> int:
    """
    Base units of a token worth usd_amount at price. Inverse of usd_value.

    Raises:
        ValueError: if price is not positive
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return usd_amount * PRECISION // price


def total_collateral_value(
    collateral: Mapping[str, int],
    prices: Mapping[str, int],
    assets: Iterable[str],
) -> int:
    """
    Sum of usd_value over assets (in the given order).

    Assets with no collateral are skipped, so they need no price.

    Raises:
        ValueError: if a held asset has no price.
    """
    total = 0
    for asset in assets:
        amount = collateral.get(asset, 0)
        if amount == 0:
            continue
        if asset not in prices:
            raise ValueError(f"Missing price for collateral asset '{asset}'")
        total += usd_value(prices[asset], amount)
    return total


def calculate_health_factor(total_debt: int, collateral_value_usd: int) -> int:
    """
    Health factor of a position, on the 18-decimal scale.

    An account without debt has MAX_HEALTH_FACTOR. Below MIN_HEALTH_FACTOR
    (1e18) the position is liquidatable.

    Example (10 tokens at $2000, 100 debt):
        calculate_health_factor(100 * 10**18, 20000 * 10**18)  -> 100 * 10**18
    """
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = collateral_value_usd * LIQUIDATION_THRESHOLD // LIQUIDATION_PRECISION
    return adjusted * PRECISION // total_debt


def is_healthy(health_factor: int) -> bool:
    return health_factor >= MIN_HEALTH_FACTOR


def liquidation_quote(price: int, debt_to_cover: int) -> LiquidationQuote:
    """
    Collateral owed to a liquidator covering debt_to_cover at price.

    Example ($18 per token, 100 debt):
        token_amount = 100e18 * 1e18 / 18e18 = 5555555555555555555
        bonus        = token_amount * 10 / 100 = 555555555555555555
    """
    token_amount = token_amount_from_usd(price, debt_to_cover)
    bonus = token_amount * LIQUIDATION_BONUS // LIQUIDATION_PRECISION
    return LiquidationQuote(
        debt_to_cover=debt_to_cover,
        token_amount=token_amount,
        bonus=bonus,
        total_seized=token_amount + bonus,
    )
