"""
ledger.py - Host Ledger for Token Balances

The Ledger class holds every token balance the engine touches: collateral
tokens and the synthetic asset alike. It is the only module that mutates
balances, ensuring controlled and auditable changes.

Key responsibilities:
    - Executes transactions atomically (all moves succeed or all fail)
    - Maintains wallet balances, allowances and unit definitions
    - Provides savepoints (atomic()) so a caller can group several
      transactions into one all-or-nothing unit
    - Tracks logical time, read by price feeds and the oracle
    - Always validates and always logs
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, NamedTuple, Optional, Set, Tuple, Any

from .core import (
    # Types
    Move, Transaction, Unit, PendingTransaction, ExecuteResult,
    Positions, BalanceMap,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    UnitNotRegistered,
    _require_int,
)


class _Savepoint(NamedTuple):
    balances: Dict[str, Dict[str, int]]
    allowances: Dict[Tuple[str, str, str], int]
    log_length: int
    next_sequence: int


class Ledger:
    """
    Double-entry token ledger with full validation and audit trail.

    Wallets are implicit: any non-empty id can receive a unit, and an unknown
    wallet simply has a zero balance. Balances can never go negative, except
    for SYSTEM_WALLET, which is the counterparty of every issuance and burn.

    Design Principles:
        - Always validates: every transaction is checked against unit
          registration and net balance constraints before any move is applied.
        - Always logs: every applied transaction is recorded in the audit trail.

    Thread Safety:
        Not thread-safe. Callers that share a ledger across threads must
        serialize access (the collateral engine does so with its own lock).

    Example:
        ledger = Ledger("main")
        ledger.register_unit(Unit("WETH", "Wrapped Ether"))
        ledger.issue("WETH", "alice", 10 * 10**18)

        tx = ledger.build_transaction([
            Move(10**18, "WETH", "alice", "bob", "transfer")
        ])
        result = ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = False,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print registrations and transaction results (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.units: Dict[str, Unit] = {}
        # (unit, owner, spender) -> remaining allowance
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.transaction_log: List[Transaction] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._next_sequence: int = 0
        self.last_rejection: str = ""

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        wallet = self.balances.get(wallet_id)
        if wallet is None:
            return 0
        return wallet.get(unit_symbol, 0)

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across wallets, system wallet included."""
        return {
            wallet: bals[unit_symbol]
            for wallet, bals in self.balances.items()
            if bals.get(unit_symbol, 0) != 0
        }

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all non-zero balances for a wallet."""
        return {u: q for u, q in self.balances.get(wallet_id, {}).items() if q != 0}

    def list_wallets(self) -> Set[str]:
        """List every wallet that has ever held a unit."""
        return set(self.balances.keys())

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def total_supply(self, unit_symbol: str) -> int:
        """
        Sum of a unit's balances across all wallets, system wallet included.

        Every issuance debits SYSTEM_WALLET, so this is always zero for a
        ledger whose balances only changed through execute().
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(self.balances[w].get(unit_symbol, 0) for w in sorted(self.balances))

    def circulating_supply(self, unit_symbol: str) -> int:
        """Units held outside SYSTEM_WALLET (issued minus burned)."""
        return -self.get_balance(SYSTEM_WALLET, unit_symbol)

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that the conservation law holds for all units.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every unit sums to zero
            - 'supplies': Dict[str, int] - circulating supply per unit
            - 'discrepancies': List[Dict] - units whose balances do not sum to zero
        """
        supplies = {}
        discrepancies = []
        for unit_symbol in sorted(self.units):
            supplies[unit_symbol] = self.circulating_supply(unit_symbol)
            total = self.total_supply(unit_symbol)
            if total != 0:
                discrepancies.append({'unit': unit_symbol, 'total': total})
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def allowance(self, unit_symbol: str, owner: str, spender: str) -> int:
        """Remaining amount spender may move out of owner's wallet."""
        return self.allowances.get((unit_symbol, owner, spender), 0)

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock to a new time.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION AND ALLOWANCES (Mutating)
    # ========================================================================

    def register_unit(self, unit: Unit) -> Unit:
        """
        Register a new unit (token) in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [decimals={unit.decimals}]")
        return unit

    def approve(self, unit_symbol: str, owner: str, spender: str, amount: int) -> None:
        """Set spender's allowance over owner's balance of a unit (overwrites)."""
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        _require_int("amount", amount)
        if amount < 0:
            raise ValueError(f"Allowance cannot be negative, got {amount}")
        self.allowances[(unit_symbol, owner, spender)] = amount

    def spend_allowance(self, unit_symbol: str, owner: str, spender: str, amount: int) -> bool:
        """
        Consume part of an allowance.

        Returns False (and changes nothing) if the allowance is too small.
        """
        key = (unit_symbol, owner, spender)
        remaining = self.allowances.get(key, 0)
        if amount > remaining:
            return False
        self.allowances[key] = remaining - amount
        return True

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def build_transaction(self, moves: List[Move], memo: str = "") -> PendingTransaction:
        """Build a PendingTransaction stamped with the current ledger time."""
        return PendingTransaction(
            moves=tuple(moves),
            timestamp=self._current_time,
            memo=memo,
        )

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}
        """
        return f"exec:{self.name}:{sequence:012d}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves succeed together or all fail together. The reason for the
        most recent rejection is kept in last_rejection.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        valid, reason = self._validate_pending(pending)
        if not valid:
            self.last_rejection = reason
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            timestamp=pending.timestamp,
            memo=pending.memo,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            sequence_number=sequence,
        )

        self._execute_moves(tx.moves)
        self.transaction_log.append(tx)

        if self.verbose:
            print(f"✓ APPLIED: {tx!r}")
        return ExecuteResult.APPLIED

    def transfer(self, unit_symbol: str, source: str, dest: str, quantity: int, reason: str = "transfer") -> ExecuteResult:
        """Execute a single-move transaction."""
        return self.execute(self.build_transaction(
            [Move(quantity, unit_symbol, source, dest, reason)],
            memo=reason,
        ))

    def issue(self, unit_symbol: str, wallet_id: str, quantity: int) -> ExecuteResult:
        """Create new units in a wallet (SYSTEM_WALLET is the counterparty)."""
        return self.transfer(unit_symbol, SYSTEM_WALLET, wallet_id, quantity, reason="issue")

    def retire(self, unit_symbol: str, wallet_id: str, quantity: int) -> ExecuteResult:
        """Destroy units held by a wallet (returned to SYSTEM_WALLET)."""
        return self.transfer(unit_symbol, wallet_id, SYSTEM_WALLET, quantity, reason="retire")

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate pending transaction against all constraints.

        Checks performed:
        1. Timestamp validation (transaction must not be from the future)
        2. Unit registration
        3. Net balance of every touched wallet stays non-negative

        Returns:
            Tuple of (success: bool, reason: str)
        """
        if pending.timestamp > self._current_time:
            return False, "future timestamp"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"

        net: Dict[Tuple[str, str], int] = {}
        for move in pending.moves:
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        # SYSTEM_WALLET is exempt - it is the counterparty of issuance
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            current = self.balances.get(wallet, {}).get(unit_sym, 0)
            proposed = current + delta
            if proposed < 0:
                return False, f"{wallet} {unit_sym}: {proposed} < 0"

        return True, ""

    def _execute_moves(self, moves) -> None:
        """Apply all moves to wallet balances."""
        for move in moves:
            self.balances[move.source][move.unit_symbol] -= move.quantity
            self.balances[move.dest][move.unit_symbol] += move.quantity

    # ========================================================================
    # SAVEPOINTS
    # ========================================================================

    def _savepoint(self) -> _Savepoint:
        return _Savepoint(
            balances={w: dict(b) for w, b in self.balances.items()},
            allowances=dict(self.allowances),
            log_length=len(self.transaction_log),
            next_sequence=self._next_sequence,
        )

    def _restore(self, saved: _Savepoint) -> None:
        balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for wallet, bals in saved.balances.items():
            balances[wallet] = defaultdict(int, bals)
        self.balances = balances
        self.allowances = saved.allowances
        del self.transaction_log[saved.log_length:]
        self._next_sequence = saved.next_sequence

    @contextmanager
    def atomic(self) -> Iterator[Ledger]:
        """
        Group several executions into one all-or-nothing unit.

        Balances, allowances, the transaction log and the sequence counter
        are restored if the block raises; the exception then propagates.
        Unit registrations and the clock are not part of the savepoint.

        Example:
            with ledger.atomic():
                ledger.transfer("WETH", "alice", "engine", amount)
                if not check():
                    raise SomeError()   # the transfer is undone
        """
        saved = self._savepoint()
        try:
            yield self
        except BaseException:
            self._restore(saved)
            if self.verbose:
                print(f"↺ ROLLED BACK to sequence {saved.next_sequence}")
            raise

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a deep copy of this ledger.

        All state is fully independent: modifications to the clone will not
        affect the original ledger, and vice versa.
        """
        cloned = Ledger(self.name, initial_time=self._current_time, verbose=self.verbose)
        cloned.units = dict(self.units)
        cloned._restore(self._savepoint())
        cloned.transaction_log = list(self.transaction_log)
        cloned.last_rejection = self.last_rejection
        return cloned
