"""
tokens.py - Token collaborators backed by the host ledger

Classes:
- Token: Protocol the collateral engine uses for every token it touches
- LedgerToken: ERC-20 style token whose balances and allowances live on a Ledger
- CollateralToken: LedgerToken with an open faucet (mint_to)
- SyntheticAsset: LedgerToken with an owner-gated mint/burn capability

Transfers report success with a boolean instead of raising, so callers
must check the return value. Owner checks raise NotOwner: calling mint or
burn without the capability is a wiring error, not a recoverable failure.
"""

from __future__ import annotations
from typing import Protocol, runtime_checkable

from .core import Unit, ExecuteResult, NotOwner, SYSTEM_WALLET, DEFAULT_DECIMALS, _require_int
from .ledger import Ledger


@runtime_checkable
class Token(Protocol):
    """
    Interface of a fungible token as seen by the collateral engine.

    transfer() and transfer_from() return False on failure. Implementations
    that silently fail must still be detected by checking the return value.
    """
    symbol: str
    decimals: int

    def balance_of(self, owner: str) -> int:
        ...

    def allowance(self, owner: str, spender: str) -> int:
        ...

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        ...


class LedgerToken:
    """
    Fungible token whose state lives on a host Ledger.

    Registering the token registers its Unit on the ledger. Because
    allowances are host state too, a ledger savepoint rolls back both
    balances and allowances.

    Example:
        host = Ledger("host")
        weth = CollateralToken(host, "WETH", "Wrapped Ether")
        weth.mint_to("alice", 10 * 10**18)
        weth.approve("alice", "engine", 10 * 10**18)
        weth.transfer_from("engine", "alice", "engine", 10**18)
    """

    def __init__(self, host: Ledger, symbol: str, name: str, decimals: int = DEFAULT_DECIMALS):
        self.host = host
        self.symbol = symbol
        self.name = name
        self.decimals = decimals
        host.register_unit(Unit(symbol, name, decimals))

    def balance_of(self, owner: str) -> int:
        return self.host.get_balance(owner, self.symbol)

    def total_supply(self) -> int:
        return self.host.circulating_supply(self.symbol)

    def allowance(self, owner: str, spender: str) -> int:
        return self.host.allowance(self.symbol, owner, spender)

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self.host.approve(self.symbol, owner, spender, amount)
        return True

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move amount from sender to recipient. False if the ledger rejects it."""
        if not self._valid(sender, recipient, amount):
            return False
        return self.host.transfer(self.symbol, sender, recipient, amount) is ExecuteResult.APPLIED

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        """
        Move amount from owner to recipient on behalf of spender.

        Consumes spender's allowance unless spender is the owner. Nothing
        changes when either the allowance or the balance is insufficient.
        """
        if not self._valid(owner, recipient, amount):
            return False
        if spender != owner and self.allowance(owner, spender) < amount:
            return False
        if self.host.transfer(self.symbol, owner, recipient, amount) is not ExecuteResult.APPLIED:
            return False
        if spender != owner:
            self.host.spend_allowance(self.symbol, owner, spender, amount)
        return True

    def _issue(self, recipient: str, amount: int) -> bool:
        if not self._valid(SYSTEM_WALLET, recipient, amount):
            return False
        return self.host.issue(self.symbol, recipient, amount) is ExecuteResult.APPLIED

    @staticmethod
    def _valid(source: str, dest: str, amount: int) -> bool:
        _require_int("amount", amount)
        return amount > 0 and bool(source) and bool(dest) and source != dest

    def __repr__(self):
        return f"{type(self).__name__}({self.symbol}, supply={self.total_supply()})"


class CollateralToken(LedgerToken):
    """Collateral token with an open faucet, for funding wallets in tests and demos."""

    def mint_to(self, recipient: str, amount: int) -> bool:
        return self._issue(recipient, amount)


class SyntheticAsset(LedgerToken):
    """
    The USD-pegged synthetic asset.

    Mint and burn are owner-gated: the owner (the collateral engine's
    address once wired) is the single authorized caller. Both report success
    with a boolean; a non-owner caller raises NotOwner.
    """

    def __init__(
        self,
        host: Ledger,
        symbol: str = "DSC",
        name: str = "Decentralized Stable Coin",
        owner: str = "deployer",
        decimals: int = DEFAULT_DECIMALS,
    ):
        super().__init__(host, symbol, name, decimals)
        self.owner = owner

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise NotOwner(f"{caller} is not the owner of {self.symbol} (owner: {self.owner})")

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._only_owner(caller)
        if not new_owner:
            raise ValueError("New owner cannot be empty")
        self.owner = new_owner

    def mint(self, caller: str, to: str, amount: int) -> bool:
        """Create amount units for to. False for a non-positive amount or empty recipient."""
        self._only_owner(caller)
        return self._issue(to, amount)

    def burn(self, caller: str, amount: int) -> bool:
        """Destroy amount units held by the owner. False if the owner holds less."""
        self._only_owner(caller)
        if not self._valid(caller, SYSTEM_WALLET, amount):
            return False
        if self.balance_of(caller) < amount:
            return False
        return self.host.retire(self.symbol, caller, amount) is ExecuteResult.APPLIED
