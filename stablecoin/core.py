"""
Core types and constants for the stable-asset engine.

This module provides the foundational data structures shared by the host
ledger, the token collaborators and the collateral engine:
1. Constants: fixed-point scale, liquidation parameters, oracle timeout
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError (host ledger) and EngineError (engine) hierarchies
4. Events emitted by the engine, and OperationResult returned by it

Amounts are plain Python ints expressed in token base units. USD values
and prices use an 18-decimal fixed-point scale ("wad").
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_DOWN
from enum import Enum
import hashlib
from typing import Dict, Optional, Tuple, Union


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and burning on the host ledger.
# The system wallet is exempt from balance validation and can go negative;
# minus its balance is the circulating supply of a unit.
SYSTEM_WALLET = "system"

# Fixed-point scale for prices, USD values and health factors.
PRECISION = 10 ** 18

# Price feeds quote with 8 decimals; this scales them up to PRECISION.
FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10 ** 10

# Only LIQUIDATION_THRESHOLD percent of collateral value backs debt,
# i.e. positions must stay 200% over-collateralized.
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_BONUS = 10
LIQUIDATION_PRECISION = 100

MIN_HEALTH_FACTOR = PRECISION
# Health factor of an account without debt.
MAX_HEALTH_FACTOR = 2 ** 256 - 1

ORACLE_TIMEOUT = timedelta(hours=3)

# Default decimal places of ledger units (collateral and synthetic asset).
DEFAULT_DECIMALS = 18


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, int]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, int]


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

def to_wad(value: Union[int, str, Decimal], decimals: int = DEFAULT_DECIMALS) -> int:
    """
    Convert a human-readable amount into integer base units.

    Strings and Decimals are converted exactly, extra digits are truncated.

    Example:
        to_wad("15")      -> 15 * 10**18
        to_wad("0.9")     -> 9 * 10**17
        to_wad(2000, 8)   -> 2000 * 10**8
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"to_wad expects int, str or Decimal, got {type(value).__name__}")
    amount = Decimal(value) * (Decimal(10) ** decimals)
    return int(amount.to_integral_value(rounding=ROUND_DOWN))


def from_wad(value: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert integer base units back into a Decimal amount."""
    return Decimal(value) / (Decimal(10) ** decimals)


def _require_int(name: str, value: int) -> None:
    """Reject anything that is not a true int (bool and float included)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be int, got {type(value).__name__}")


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a ledger transaction or an engine operation.

    APPLIED: Validated and applied; all effects are visible.
    REJECTED: Failed validation; no effect is visible.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


# ============================================================================
# EXCEPTIONS - HOST LEDGER
# ============================================================================

class LedgerError(Exception):
    """Base exception for all host-ledger errors."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered with the ledger."""
    pass


class NotOwner(LedgerError):
    """Raised when someone other than the owner calls an owner-gated token function."""
    pass


# ============================================================================
# EXCEPTIONS - ENGINE
# ============================================================================

class EngineError(Exception):
    """Base exception for all collateral engine errors."""
    pass


class ConfigurationError(EngineError):
    """Raised at construction time for an inconsistent asset registry or missing collaborator."""
    pass


class ZeroAmount(EngineError):
    """An amount argument was zero or negative."""

    def __init__(self, amount: int = 0):
        super().__init__(f"Amount must be more than zero, got {amount}")
        self.amount = amount


class AssetNotAllowed(EngineError):
    """The collateral asset is not in the registry."""

    def __init__(self, asset: str):
        super().__init__(f"Asset {asset!r} is not an allowed collateral")
        self.asset = asset


class BurnExceedsBalance(EngineError):
    """Burning more than the account's outstanding debt."""

    def __init__(self, amount: int, debt: int):
        super().__init__(f"Burn amount {amount} exceeds debt {debt}")
        self.amount = amount
        self.debt = debt


class InsufficientCollateral(EngineError):
    """Redeeming or seizing more collateral than the account holds."""

    def __init__(self, asset: str, amount: int, balance: int):
        super().__init__(f"Cannot remove {amount} {asset}, account holds {balance}")
        self.asset = asset
        self.amount = amount
        self.balance = balance


class HealthFactorBroken(EngineError):
    """The operation would leave the account below MIN_HEALTH_FACTOR."""

    def __init__(self, health_factor: int):
        super().__init__(f"Health factor broken: {health_factor} < {MIN_HEALTH_FACTOR}")
        self.health_factor = health_factor


class HealthFactorOk(EngineError):
    """Liquidation attempted on an account that is not liquidatable."""

    def __init__(self, health_factor: int):
        super().__init__(f"Health factor ok: {health_factor} >= {MIN_HEALTH_FACTOR}")
        self.health_factor = health_factor


class HealthFactorNotImproved(EngineError):
    """Liquidation did not strictly improve the target's health factor."""

    def __init__(self, starting: int, ending: int):
        super().__init__(f"Health factor not improved: {ending} <= {starting}")
        self.starting = starting
        self.ending = ending


class TransferFailed(EngineError):
    """A token collaborator reported a failed transfer."""
    pass


class CollateralTransferFailed(TransferFailed):
    """Pulling deposited collateral into custody failed."""
    pass


class RedeemTransferFailed(TransferFailed):
    """Pushing redeemed or seized collateral out of custody failed."""
    pass


class SyntheticTransferFailed(TransferFailed):
    """Pulling the synthetic asset from the payer before a burn failed."""
    pass


class MintingFailed(EngineError):
    """The synthetic asset refused to mint."""
    pass


class BurningFailed(EngineError):
    """The synthetic asset refused to burn."""
    pass


class StaleOrInvalidPrice(EngineError):
    """The oracle reading is stale, incomplete or non-positive."""
    pass


class ReentrantCall(EngineError):
    """A mutating operation was entered while another one was in progress on the same thread."""
    pass


# ============================================================================
# CORE DATA STRUCTURES - HOST LEDGER
# ============================================================================

@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a token held on the host ledger.

    Attributes:
        symbol: Short identifier (e.g., "WETH", "DSC").
        name: Human-readable name.
        decimals: Decimal places of one whole token (display only; balances are ints).
    """
    symbol: str
    name: str
    decimals: int = DEFAULT_DECIMALS

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Unit symbol cannot be empty")
        if self.decimals < 0:
            raise ValueError(f"Unit decimals cannot be negative, got {self.decimals}")


@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of a unit between two wallets.

    Attributes:
        quantity: Amount in base units (positive int).
        unit_symbol: Symbol of the unit being transferred.
        source: Wallet debited.
        dest: Wallet credited.
        reason: Short tag describing why the move exists (e.g., "transfer", "mint").
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    reason: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.reason or not self.reason.strip():
            raise ValueError("Move reason cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A set of moves submitted to the host ledger for execution - represents INTENT.

    Attributes:
        moves: Value transfers, applied all together or not at all.
        timestamp: Ledger time at which the intent was built.
        memo: Free-form description for the audit log.
    """
    moves: Tuple[Move, ...]
    timestamp: datetime
    memo: str = ""

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves."""
        return not self.moves

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, memo={self.memo!r})"


def _compute_tx_hash(moves: Tuple[Move, ...], sequence: int, timestamp: datetime) -> str:
    """
    Deterministic content hash of an executed transaction.

    The sequence number is part of the content, so two identical transfers
    executed one after the other get different hashes.
    """
    parts = [f"seq:{sequence}", f"ts:{timestamp.isoformat()}"]
    for m in moves:
        parts.append(f"move:{m.quantity}|{m.unit_symbol}|{m.source}|{m.dest}|{m.reason}")
    content = "|".join(parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of balance changes - represents FACT.

    Attributes:
        moves: Value transfers that were applied.
        timestamp: When the PendingTransaction was built.
        memo: Description carried over from the PendingTransaction.
        exec_id: Unique execution identifier (ledger + sequence).
        ledger_name: Name of the ledger that executed this.
        sequence_number: Monotonic sequence within the ledger.
        tx_hash: Content hash (auto-computed).
    """
    moves: Tuple[Move, ...]
    timestamp: datetime
    memo: str
    exec_id: str
    ledger_name: str
    sequence_number: int
    tx_hash: str = field(default="")

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")
        if not self.tx_hash:
            object.__setattr__(
                self, 'tx_hash',
                _compute_tx_hash(self.moves, self.sequence_number, self.timestamp),
            )

    def __repr__(self) -> str:
        moves = ", ".join(repr(m) for m in self.moves)
        return f"Transaction({self.exec_id}, {self.memo!r}, [{moves}])"


# ============================================================================
# ENGINE EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    user: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    """Collateral left custody. redeemed_from differs from redeemed_to only in liquidations."""
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class DebtMinted:
    user: str
    amount: int


@dataclass(frozen=True, slots=True)
class DebtBurned:
    """Debt of on_behalf_of was repaid with synthetic asset pulled from payer."""
    on_behalf_of: str
    payer: str
    amount: int


EngineEvent = Union[CollateralDeposited, CollateralRedeemed, DebtMinted, DebtBurned]


# ============================================================================
# OPERATION RESULT
# ============================================================================

@dataclass(frozen=True, slots=True)
class OperationResult:
    """
    Outcome of a mutating engine operation.

    Expected failures are values, not exceptions: a REJECTED result carries
    the typed EngineError describing why, and the engine state is exactly as
    it was before the call.

    Attributes:
        operation: Name of the engine operation (e.g., "deposit_collateral").
        status: ExecuteResult.APPLIED or ExecuteResult.REJECTED.
        error: The failure reason when rejected, otherwise None.
        events: Events emitted by the operation (empty when rejected).
    """
    operation: str
    status: ExecuteResult
    error: Optional[EngineError] = None
    events: Tuple[EngineEvent, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is ExecuteResult.APPLIED

    def unwrap(self) -> OperationResult:
        """Return self if applied, otherwise raise the carried error."""
        if self.error is not None:
            raise self.error
        return self

    def __repr__(self) -> str:
        if self.ok:
            return f"OperationResult({self.operation}: applied, {len(self.events)} events)"
        return f"OperationResult({self.operation}: rejected, {type(self.error).__name__}: {self.error})"
