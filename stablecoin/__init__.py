"""
stablecoin - Over-Collateralized Stable-Asset Engine

Users deposit approved collateral tokens, mint a USD-pegged synthetic asset
against them, and can be liquidated by anyone once their health factor
falls below MIN_HEALTH_FACTOR.

Usage:
    from stablecoin import (
        Ledger, CollateralToken, SyntheticAsset,
        StaticPriceFeed, PriceOracle, CollateralEngine,
    )

    host = Ledger("host")
    weth = CollateralToken(host, "WETH", "Wrapped Ether")
    dsc = SyntheticAsset(host, owner="deployer")
    oracle = PriceOracle({"ETH/USD": StaticPriceFeed(host, 2000 * 10**8)}, host)

    engine = CollateralEngine(host, [weth], ["ETH/USD"], dsc, oracle)
    dsc.transfer_ownership("deployer", engine.address)

    weth.mint_to("alice", 10 * 10**18)
    weth.approve("alice", engine.address, 10 * 10**18)
    result = engine.deposit_and_mint("alice", "WETH", 10 * 10**18, 100 * 10**18)
    assert result.ok
"""

# Core types
from .core import (
    Unit,
    Move,
    PendingTransaction,
    Transaction,
    ExecuteResult,
    OperationResult,
    CollateralDeposited,
    CollateralRedeemed,
    DebtMinted,
    DebtBurned,
    EngineEvent,
    to_wad,
    from_wad,
    SYSTEM_WALLET,
    PRECISION,
    FEED_DECIMALS,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ORACLE_TIMEOUT,
    DEFAULT_DECIMALS,
)

# Exceptions
from .core import (
    LedgerError,
    UnitNotRegistered,
    NotOwner,
    EngineError,
    ConfigurationError,
    ZeroAmount,
    AssetNotAllowed,
    BurnExceedsBalance,
    InsufficientCollateral,
    HealthFactorBroken,
    HealthFactorOk,
    HealthFactorNotImproved,
    TransferFailed,
    CollateralTransferFailed,
    RedeemTransferFailed,
    SyntheticTransferFailed,
    MintingFailed,
    BurningFailed,
    StaleOrInvalidPrice,
    ReentrantCall,
)

# Host ledger
from .ledger import Ledger

# Tokens
from .tokens import Token, LedgerToken, CollateralToken, SyntheticAsset

# Pricing
from .oracle import (
    RoundData,
    PriceFeed,
    StaticPriceFeed,
    TimeSeriesPriceFeed,
    PriceOracle,
)

# Pure health-factor math
from .health import (
    LiquidationQuote,
    normalize_price,
    usd_value,
    token_amount_from_usd,
    total_collateral_value,
    calculate_health_factor,
    is_healthy,
    liquidation_quote,
)

# Engine
from .engine import CollateralEngine, AccountStore, AccountInformation


__all__ = [
    # Core
    'Unit', 'Move', 'PendingTransaction', 'Transaction', 'ExecuteResult', 'OperationResult',
    'CollateralDeposited', 'CollateralRedeemed', 'DebtMinted', 'DebtBurned', 'EngineEvent',
    'to_wad', 'from_wad',
    # Constants
    'SYSTEM_WALLET', 'PRECISION', 'FEED_DECIMALS', 'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_THRESHOLD', 'LIQUIDATION_BONUS', 'LIQUIDATION_PRECISION',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'ORACLE_TIMEOUT', 'DEFAULT_DECIMALS',
    # Exceptions
    'LedgerError', 'UnitNotRegistered', 'NotOwner',
    'EngineError', 'ConfigurationError', 'ZeroAmount', 'AssetNotAllowed',
    'BurnExceedsBalance', 'InsufficientCollateral',
    'HealthFactorBroken', 'HealthFactorOk', 'HealthFactorNotImproved',
    'TransferFailed', 'CollateralTransferFailed', 'RedeemTransferFailed',
    'SyntheticTransferFailed', 'MintingFailed', 'BurningFailed',
    'StaleOrInvalidPrice', 'ReentrantCall',
    # Host ledger
    'Ledger',
    # Tokens
    'Token', 'LedgerToken', 'CollateralToken', 'SyntheticAsset',
    # Pricing
    'RoundData', 'PriceFeed', 'StaticPriceFeed', 'TimeSeriesPriceFeed', 'PriceOracle',
    # Health
    'LiquidationQuote', 'normalize_price', 'usd_value', 'token_amount_from_usd',
    'total_collateral_value', 'calculate_health_factor', 'is_healthy', 'liquidation_quote',
    # Engine
    'CollateralEngine', 'AccountStore', 'AccountInformation',
]

__version__ = '1.0.0'
