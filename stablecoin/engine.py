"""
engine.py - Collateral & Debt Engine

The CollateralEngine owns every account's collateral and debt and is the
only code that changes them. Users deposit registered collateral tokens,
mint the synthetic asset against them, and can be liquidated by anyone
once their health factor drops below MIN_HEALTH_FACTOR.

Key responsibilities:
    - Keeps the asset registry (collateral symbol -> price-feed id), fixed at construction
    - Runs every mutating operation as one all-or-nothing unit: account
      changes, token transfers, mints and burns are applied optimistically,
      validated, then committed or rolled back together
    - Serializes operations with one lock and rejects reentrant calls
    - Reports expected failures as OperationResult values carrying a typed EngineError

Operation flow (e.g. mint):
    1. Validate inputs (ZeroAmount, AssetNotAllowed, ...)
    2. Apply the account change
    3. Check the health factor on the new position
    4. Call the collaborator (synthetic asset / collateral token), check its boolean
    5. Commit, or restore the account store and the host ledger savepoint
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple
import threading

from .core import (
    # Types
    ExecuteResult, OperationResult, EngineEvent,
    CollateralDeposited, CollateralRedeemed, DebtMinted, DebtBurned,
    # Exceptions
    EngineError, ConfigurationError, ZeroAmount, AssetNotAllowed,
    BurnExceedsBalance, InsufficientCollateral,
    HealthFactorBroken, HealthFactorOk, HealthFactorNotImproved,
    CollateralTransferFailed, RedeemTransferFailed, SyntheticTransferFailed,
    MintingFailed, BurningFailed, ReentrantCall,
    _require_int,
)
from .health import (
    calculate_health_factor, is_healthy, liquidation_quote,
    total_collateral_value, usd_value, token_amount_from_usd,
)
from .ledger import Ledger
from .oracle import PriceOracle
from .tokens import Token, SyntheticAsset


@dataclass(frozen=True, slots=True)
class AccountInformation:
    """Debt and USD collateral value of one account."""
    total_debt: int
    collateral_value_usd: int

    @property
    def health_factor(self) -> int:
        return calculate_health_factor(self.total_debt, self.collateral_value_usd)


class AccountStore:
    """
    Per-user collateral and debt records.

    Records are created on first credit and dropped when they return to
    zero, so an emptied account is indistinguishable from a new one.
    Decreases are checked before they are applied; balances never go negative.
    """

    def __init__(self):
        self._collateral: Dict[str, Dict[str, int]] = {}
        self._debt: Dict[str, int] = {}

    def collateral(self, user: str, asset: str) -> int:
        return self._collateral.get(user, {}).get(asset, 0)

    def collateral_of(self, user: str) -> Dict[str, int]:
        return dict(self._collateral.get(user, {}))

    def debt(self, user: str) -> int:
        return self._debt.get(user, 0)

    def users(self) -> Set[str]:
        return set(self._collateral) | set(self._debt)

    def total_debt(self) -> int:
        return sum(self._debt.values())

    def add_collateral(self, user: str, asset: str, amount: int) -> None:
        held = self._collateral.setdefault(user, {})
        held[asset] = held.get(asset, 0) + amount

    def remove_collateral(self, user: str, asset: str, amount: int) -> None:
        balance = self.collateral(user, asset)
        if amount > balance:
            raise InsufficientCollateral(asset, amount, balance)
        held = self._collateral[user]
        if balance == amount:
            del held[asset]
            if not held:
                del self._collateral[user]
        else:
            held[asset] = balance - amount

    def add_debt(self, user: str, amount: int) -> None:
        self._debt[user] = self._debt.get(user, 0) + amount

    def remove_debt(self, user: str, amount: int) -> None:
        debt = self.debt(user)
        if amount > debt:
            raise BurnExceedsBalance(amount, debt)
        if debt == amount:
            del self._debt[user]
        else:
            self._debt[user] = debt - amount

    def snapshot(self) -> Tuple[Dict[str, Dict[str, int]], Dict[str, int]]:
        return {u: dict(c) for u, c in self._collateral.items()}, dict(self._debt)

    def restore(self, saved: Tuple[Dict[str, Dict[str, int]], Dict[str, int]]) -> None:
        collateral, debt = saved
        self._collateral = {u: dict(c) for u, c in collateral.items()}
        self._debt = dict(debt)


class CollateralEngine:
    """
    Over-collateralized minting engine for a USD-pegged synthetic asset.

    Every mutating method takes the acting account id first and returns an
    OperationResult. A rejected result leaves accounts, token balances and
    allowances exactly as they were.

    Thread Safety:
        Operations and views are serialized with a single lock. A mutating
        call made while an operation is running on the same thread (for
        example from inside a token callback) is rejected with ReentrantCall.

    Example:
        engine = CollateralEngine(host, [weth, wbtc], ["ETH/USD", "BTC/USD"], dsc, oracle)
        dsc.transfer_ownership("deployer", engine.address)

        weth.approve("alice", engine.address, 10 * 10**18)
        result = engine.deposit_and_mint("alice", "WETH", 10 * 10**18, 100 * 10**18)
        assert result.ok
        engine.health_factor("alice")   # 100e18 at $2000/WETH
    """

    # Pure calculation, exposed for callers that hold their own figures.
    calculate_health_factor = staticmethod(calculate_health_factor)

    def __init__(
        self,
        host: Ledger,
        collateral_tokens: Sequence[Token],
        price_feed_ids: Sequence[str],
        synthetic: Optional[SyntheticAsset],
        oracle: PriceOracle,
        address: str = "engine",
        verbose: bool = False,
    ):
        """
        Create the engine and its fixed asset registry.

        Args:
            host: Ledger holding token balances (provides atomic savepoints)
            collateral_tokens: Allowed collateral tokens
            price_feed_ids: Oracle feed id of each collateral token (same order)
            synthetic: Synthetic asset the engine mints and burns (must be owned by address)
            oracle: Price oracle used to value collateral
            address: Wallet id of the engine (custody of deposited collateral)
            verbose: Print one line per operation

        Raises:
            ConfigurationError: on mismatched or duplicate registry entries,
                                or a missing collaborator
        """
        if synthetic is None:
            raise ConfigurationError("Synthetic asset is required")
        if host is None:
            raise ConfigurationError("Host ledger is required")
        if oracle is None:
            raise ConfigurationError("Price oracle is required")
        if not address:
            raise ConfigurationError("Engine address cannot be empty")

        tokens = list(collateral_tokens)
        feed_ids = list(price_feed_ids)
        if len(tokens) != len(feed_ids):
            raise ConfigurationError(
                f"Token and price feed lists must have the same length "
                f"({len(tokens)} tokens, {len(feed_ids)} feeds)"
            )

        registry: Dict[str, str] = {}
        token_by_symbol: Dict[str, Token] = {}
        for token, feed_id in zip(tokens, feed_ids):
            if token.symbol in registry:
                raise ConfigurationError(f"Duplicate collateral token {token.symbol}")
            registry[token.symbol] = feed_id
            token_by_symbol[token.symbol] = token

        self.host = host
        self.oracle = oracle
        self.address = address
        self.verbose = verbose
        self._synthetic = synthetic
        self._price_feeds: Mapping[str, str] = MappingProxyType(registry)
        self._tokens: Mapping[str, Token] = MappingProxyType(token_by_symbol)
        self._collateral_assets: Tuple[str, ...] = tuple(registry)

        self._accounts = AccountStore()
        # Committed events only; rejected operations leave no trace here.
        self.events: List[EngineEvent] = []

        self._lock = threading.Lock()
        self._owner_thread: Optional[int] = None

    # ========================================================================
    # TRANSACTION MACHINERY
    # ========================================================================

    @contextmanager
    def _exclusive(self, mutating: bool) -> Iterator[None]:
        """
        Hold the engine lock for the duration of the block.

        Views called by the thread that already holds the lock run inside
        the current operation; mutating calls from it are reentrant.
        """
        me = threading.get_ident()
        if self._owner_thread == me:
            if mutating:
                raise ReentrantCall("Engine operation already in progress")
            yield
            return
        with self._lock:
            self._owner_thread = me
            try:
                yield
            finally:
                self._owner_thread = None

    def _execute(
        self,
        operation: str,
        caller: str,
        body: Callable[[List[EngineEvent]], None],
    ) -> OperationResult:
        """
        Run body as one all-or-nothing unit.

        The account store is snapshotted and the host ledger enters a
        savepoint; any exception restores both. EngineErrors become a
        REJECTED result, anything else propagates after the rollback.
        """
        try:
            with self._exclusive(mutating=True):
                saved = self._accounts.snapshot()
                events: List[EngineEvent] = []
                try:
                    with self.host.atomic():
                        body(events)
                except BaseException:
                    self._accounts.restore(saved)
                    raise
                self.events.extend(events)
        except EngineError as exc:
            result = OperationResult(operation, ExecuteResult.REJECTED, error=exc)
        else:
            result = OperationResult(operation, ExecuteResult.APPLIED, events=tuple(events))

        if self.verbose:
            self._print_result(result, caller)
        return result

    @staticmethod
    def _print_result(result: OperationResult, caller: str) -> None:
        if result.ok:
            print(f"✓ APPLIED {result.operation} [{caller}] ({len(result.events)} events)")
        else:
            print(f"✗ REJECTED {result.operation} [{caller}]: "
                  f"{type(result.error).__name__}: {result.error}")

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    def deposit_collateral(self, caller: str, asset: str, amount: int) -> OperationResult:
        """
        Deposit collateral into engine custody.

        The caller must have approved the engine's address for amount.
        Depositing only improves the health factor, so it is not checked.
        """
        return self._execute(
            "deposit_collateral", caller,
            lambda events: self._deposit(events, caller, asset, amount),
        )

    def mint(self, caller: str, amount: int) -> OperationResult:
        """Mint synthetic asset against the caller's collateral."""
        return self._execute(
            "mint", caller,
            lambda events: self._mint(events, caller, amount),
        )

    def deposit_and_mint(
        self,
        caller: str,
        asset: str,
        collateral_amount: int,
        mint_amount: int,
    ) -> OperationResult:
        """Deposit collateral and mint in one step."""
        def body(events: List[EngineEvent]) -> None:
            self._deposit(events, caller, asset, collateral_amount)
            self._mint(events, caller, mint_amount)

        return self._execute("deposit_and_mint", caller, body)

    def redeem_collateral(self, caller: str, asset: str, amount: int) -> OperationResult:
        """Withdraw collateral; the remaining position must stay healthy."""
        def body(events: List[EngineEvent]) -> None:
            self._redeem(events, asset, amount, caller, caller)
            self._revert_if_health_factor_is_broken(caller)

        return self._execute("redeem_collateral", caller, body)

    def burn(self, caller: str, amount: int) -> OperationResult:
        """
        Repay debt with the caller's synthetic asset.

        The caller must have approved the engine's address for amount.
        Repaying only improves the health factor, so it is not checked.
        """
        return self._execute(
            "burn", caller,
            lambda events: self._burn(events, amount, caller, caller),
        )

    def redeem_and_burn(
        self,
        caller: str,
        asset: str,
        collateral_amount: int,
        burn_amount: int,
    ) -> OperationResult:
        """Burn debt, then redeem collateral, in one step."""
        def body(events: List[EngineEvent]) -> None:
            self._burn(events, burn_amount, caller, caller)
            self._redeem(events, asset, collateral_amount, caller, caller)
            self._revert_if_health_factor_is_broken(caller)

        return self._execute("redeem_and_burn", caller, body)

    def liquidate(
        self,
        caller: str,
        collateral_asset: str,
        user: str,
        debt_to_cover: int,
    ) -> OperationResult:
        """
        Repay part of an unhealthy account's debt in exchange for its collateral.

        The liquidator (caller) pays debt_to_cover of synthetic asset and
        receives the equivalent amount of collateral_asset plus a
        LIQUIDATION_BONUS percent bonus, taken from user's collateral.

        Rejected with:
            HealthFactorOk: user is not liquidatable
            BurnExceedsBalance: debt_to_cover exceeds user's debt
            InsufficientCollateral: user holds less collateral than the seizure
            HealthFactorNotImproved: user's health factor did not strictly rise
            HealthFactorBroken: the liquidator's own position is unhealthy
        """
        def body(events: List[EngineEvent]) -> None:
            self._require_more_than_zero(debt_to_cover)
            self._allowed_token(collateral_asset)

            starting = self._health_factor(user)
            if is_healthy(starting):
                raise HealthFactorOk(starting)

            quote = liquidation_quote(self._price(collateral_asset), debt_to_cover)
            self._redeem(events, collateral_asset, quote.total_seized, user, caller)
            self._burn(events, debt_to_cover, user, caller)

            ending = self._health_factor(user)
            if ending <= starting:
                raise HealthFactorNotImproved(starting, ending)
            self._revert_if_health_factor_is_broken(caller)

        return self._execute("liquidate", caller, body)

    # ========================================================================
    # OPERATION STEPS (run inside _execute)
    # ========================================================================

    def _deposit(self, events: List[EngineEvent], user: str, asset: str, amount: int) -> None:
        self._require_more_than_zero(amount)
        token = self._allowed_token(asset)
        self._accounts.add_collateral(user, asset, amount)
        events.append(CollateralDeposited(user, asset, amount))
        if not token.transfer_from(self.address, user, self.address, amount):
            raise CollateralTransferFailed(f"Pulling {amount} {asset} from {user} failed")

    def _mint(self, events: List[EngineEvent], user: str, amount: int) -> None:
        self._require_more_than_zero(amount)
        self._accounts.add_debt(user, amount)
        self._revert_if_health_factor_is_broken(user)
        if not self._synthetic.mint(self.address, user, amount):
            raise MintingFailed(f"Minting {amount} {self._synthetic.symbol} to {user} failed")
        events.append(DebtMinted(user, amount))

    def _redeem(
        self,
        events: List[EngineEvent],
        asset: str,
        amount: int,
        source: str,
        dest: str,
    ) -> None:
        self._require_more_than_zero(amount)
        token = self._allowed_token(asset)
        self._accounts.remove_collateral(source, asset, amount)
        events.append(CollateralRedeemed(source, dest, asset, amount))
        if not token.transfer(self.address, dest, amount):
            raise RedeemTransferFailed(f"Sending {amount} {asset} to {dest} failed")

    def _burn(self, events: List[EngineEvent], amount: int, on_behalf_of: str, payer: str) -> None:
        self._require_more_than_zero(amount)
        self._accounts.remove_debt(on_behalf_of, amount)
        if not self._synthetic.transfer_from(self.address, payer, self.address, amount):
            raise SyntheticTransferFailed(
                f"Pulling {amount} {self._synthetic.symbol} from {payer} failed"
            )
        if not self._synthetic.burn(self.address, amount):
            raise BurningFailed(f"Burning {amount} {self._synthetic.symbol} failed")
        events.append(DebtBurned(on_behalf_of, payer, amount))

    @staticmethod
    def _require_more_than_zero(amount: int) -> None:
        _require_int("amount", amount)
        if amount <= 0:
            raise ZeroAmount(amount)

    def _allowed_token(self, asset: str) -> Token:
        token = self._tokens.get(asset)
        if token is None:
            raise AssetNotAllowed(asset)
        return token

    def _revert_if_health_factor_is_broken(self, user: str) -> None:
        health_factor = self._health_factor(user)
        if not is_healthy(health_factor):
            raise HealthFactorBroken(health_factor)

    # ========================================================================
    # VALUATION (no locking; callers hold the lock)
    # ========================================================================

    def _price(self, asset: str) -> int:
        price, _ = self.oracle.latest_price(self._price_feeds[asset])
        return price

    def _collateral_value(self, user: str) -> int:
        # Assets the user does not hold contribute nothing and need no price.
        held = self._accounts.collateral_of(user)
        prices = {asset: self._price(asset) for asset in self._collateral_assets if held.get(asset)}
        return total_collateral_value(held, prices, self._collateral_assets)

    def _account_information(self, user: str) -> AccountInformation:
        return AccountInformation(
            total_debt=self._accounts.debt(user),
            collateral_value_usd=self._collateral_value(user),
        )

    def _health_factor(self, user: str) -> int:
        debt = self._accounts.debt(user)
        if debt == 0:
            return calculate_health_factor(0, 0)
        return calculate_health_factor(debt, self._collateral_value(user))

    # ========================================================================
    # VIEWS
    # ========================================================================

    def health_factor(self, user: str) -> int:
        """Current health factor of user (MAX_HEALTH_FACTOR without debt)."""
        with self._exclusive(mutating=False):
            return self._health_factor(user)

    def account_information(self, user: str) -> AccountInformation:
        with self._exclusive(mutating=False):
            return self._account_information(user)

    def account_collateral_value(self, user: str) -> int:
        """USD value (wad) of all of user's collateral."""
        with self._exclusive(mutating=False):
            return self._collateral_value(user)

    def usd_value(self, asset: str, amount: int) -> int:
        """USD value (wad) of amount base units of a registered asset."""
        self._allowed_token(asset)
        return usd_value(self._price(asset), amount)

    def token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        """Base units of a registered asset worth usd_amount (wad)."""
        self._allowed_token(asset)
        return token_amount_from_usd(self._price(asset), usd_amount)

    def collateral_balance(self, user: str, asset: str) -> int:
        with self._exclusive(mutating=False):
            return self._accounts.collateral(user, asset)

    def debt_of(self, user: str) -> int:
        with self._exclusive(mutating=False):
            return self._accounts.debt(user)

    def accounts(self) -> Set[str]:
        """Users with collateral or debt."""
        with self._exclusive(mutating=False):
            return self._accounts.users()

    def total_debt(self) -> int:
        """Sum of all accounts' debt; equals the synthetic asset's supply."""
        with self._exclusive(mutating=False):
            return self._accounts.total_debt()

    @property
    def collateral_assets(self) -> Tuple[str, ...]:
        return self._collateral_assets

    def price_feed_id(self, asset: str) -> str:
        self._allowed_token(asset)
        return self._price_feeds[asset]

    def collateral_token(self, asset: str) -> Token:
        return self._allowed_token(asset)

    @property
    def synthetic(self) -> SyntheticAsset:
        return self._synthetic

    def __repr__(self):
        return (f"CollateralEngine({self.address}, assets={list(self._collateral_assets)}, "
                f"accounts={len(self._accounts.users())})")
