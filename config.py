"""
Configuration loader - reads .env and exposes all runtime settings.
"""

import os
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv
from solders.keypair import Keypair

from errors import ConfigurationError

load_dotenv()

# ── Solana RPC ─────────────────────────────────────────────────
SOLANA_RPC_URL = os.getenv('SOLANA_RPC_URL', 'https://api.mainnet-beta.solana.com')
SOLANA_WS_URL = os.getenv('SOLANA_WS_URL', 'wss://api.mainnet-beta.solana.com')
RPC_COMMITMENT = os.getenv('RPC_COMMITMENT', 'confirmed')

# Raydium AMM v4 (Liquidity Pool V4)
RAYDIUM_AMM_PROGRAM_ID = os.getenv('RAYDIUM_AMM_PROGRAM_ID', '675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8')

# ── Storage ────────────────────────────────────────────────────
DB_PATH = os.getenv('DB_PATH', 'raydium_pools.sqlite')

# ── Logging ────────────────────────────────────────────────────
LOGGING_CONFIG = {
    'logger_name': 'raydium_sniper',
    'message_log_file': os.getenv('MESSAGE_LOG_FILE', 'logs/sniper_messages.log'),
    'max_log_size_mb': int(os.getenv('MAX_LOG_SIZE_MB', '10')),
    'backup_count': int(os.getenv('LOG_BACKUP_COUNT', '5')),
    'level': os.getenv('LOG_LEVEL', 'INFO').upper(),
}


@dataclass
class SniperConfig:
    """Trading parameters for the buy-then-watch-then-sell strategy."""
    buy_amount: Decimal = Decimal(os.getenv('BUY_AMOUNT', '0.05'))  # SOL per buy
    sell_target_percentage: Decimal = Decimal(os.getenv('SELL_TARGET_PERCENTAGE', '10'))
    poll_interval: float = float(os.getenv('POLL_INTERVAL', '60'))  # seconds
    watch_mode: str = os.getenv('WATCH_MODE', 'poll')  # 'poll' or 'subscribe'
    auto_snipe: bool = os.getenv('AUTO_SNIPE', '0') == '1'
    compute_unit_limit: int = int(os.getenv('COMPUTE_UNIT_LIMIT', '200000'))
    compute_unit_price: int = int(os.getenv('COMPUTE_UNIT_PRICE', '10000'))  # micro-lamports
    min_sol_reserve: Decimal = Decimal(os.getenv('MIN_SOL_RESERVE', '0.05'))
    default_decimals: int = int(os.getenv('DEFAULT_DECIMALS', '9'))

    def __post_init__(self):
        if self.watch_mode not in ('poll', 'subscribe'):
            raise ConfigurationError(f"WATCH_MODE must be 'poll' or 'subscribe', got {self.watch_mode!r}")
        if self.poll_interval <= 0:
            raise ConfigurationError("POLL_INTERVAL must be positive")


def load_payer_keypair(secret: str = None) -> Keypair:
    """Load the signing keypair from a base58 secret (WALLET_PRIVATE_KEY by default)."""
    secret = secret or os.getenv('WALLET_PRIVATE_KEY')
    if not secret:
        raise ConfigurationError("WALLET_PRIVATE_KEY is not set")
    try:
        return Keypair.from_base58_string(secret)
    except ValueError as e:
        raise ConfigurationError(f"WALLET_PRIVATE_KEY is not a valid base58 keypair: {e}") from e
