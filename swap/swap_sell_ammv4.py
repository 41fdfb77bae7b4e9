"""
Raydium AMM v4 swap module for executing sell trades.
This module provides both CLI and programmatic interfaces for executing trades.

Usage: python -m swap.swap_sell_ammv4 <record_id> [token_amount]
"""

import asyncio
import logging
import sys
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from spl.token.instructions import get_associated_token_address

from config import DB_PATH, RPC_COMMITMENT, SOLANA_RPC_URL, SOLANA_WS_URL, SniperConfig, load_payer_keypair
from db_manager import PoolStore
from errors import SniperError
from ledger_client import LedgerClient
from logger import setup_logger
from models import SwapDirection
from swap.executor import SwapExecutor

logger = logging.getLogger(__name__)


async def execute_sell(record_id: str, token_amount: Optional[Decimal] = None) -> Dict[str, Any]:
    """
    Sell the token of a stored pool back to SOL.

    Args:
        record_id: Pool record ID in the local store
        token_amount: Tokens to sell; the whole wallet balance when omitted

    Returns:
        Dict containing trade details including:
        - tx_signature: Transaction signature
        - record_id / amm_id: Pool identifiers
        - base_amount: Amount of token sold
        - timestamp: Trade timestamp (ms)
        - status: 'confirmed' or 'failed'
    """
    config = SniperConfig()
    ledger = LedgerClient(SOLANA_RPC_URL, SOLANA_WS_URL, RPC_COMMITMENT)
    store = PoolStore(DB_PATH)
    trade_details = {
        'tx_signature': None,
        'record_id': record_id,
        'amm_id': None,
        'base_amount': token_amount,
        'timestamp': int(datetime.now().timestamp() * 1000),
        'status': 'failed',
    }
    try:
        record = store.get_pool_record(record_id)
        trade_details['amm_id'] = record.amm_id
        executor = SwapExecutor.from_config(ledger, load_payer_keypair(), config)

        token_account = get_associated_token_address(executor.owner, record.pubkey('token_address'))
        raw_balance, decimals = await ledger.get_token_balance(token_account)
        if token_amount is None:
            token_amount = Decimal(raw_balance) / (Decimal(10) ** decimals)
        trade_details['base_amount'] = token_amount

        signature = await executor.swap(
            record, SwapDirection.QUOTE_TO_BASE, Decimal(str(token_amount)), decimals=decimals
        )
        trade_details.update(tx_signature=signature, status='confirmed')
    except SniperError as e:
        logger.error(f"Error executing sell trade: {e}")
        trade_details['error'] = str(e)
    finally:
        await ledger.close()
        store.close()
    return trade_details


def main():
    setup_logger()
    if len(sys.argv) < 2:
        print("Usage: python -m swap.swap_sell_ammv4 <record_id> [token_amount]")
        sys.exit(2)
    record_id = sys.argv[1]
    token_amount = Decimal(sys.argv[2]) if len(sys.argv) > 2 else None
    print(f"Executing sell: record={record_id}, amount={token_amount or 'full balance'}")
    result = asyncio.run(execute_sell(record_id, token_amount))
    print(f"Result: {result}")
    if result['status'] != 'confirmed':
        sys.exit(1)


if __name__ == "__main__":
    main()
