"""
Raydium AMM v4 swap module for executing buy trades.
This module provides both CLI and programmatic interfaces for executing trades.

Usage: python -m swap.swap_buy_ammv4 <record_id> [sol_amount]
"""

import asyncio
import logging
import sys
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from config import DB_PATH, RPC_COMMITMENT, SOLANA_RPC_URL, SOLANA_WS_URL, SniperConfig, load_payer_keypair
from db_manager import PoolStore
from errors import SniperError
from ledger_client import LedgerClient
from logger import setup_logger
from models import SwapDirection
from pricing import SOL_DECIMALS
from swap.executor import SwapExecutor

logger = logging.getLogger(__name__)


async def execute_buy(record_id: str, sol_amount: Optional[Decimal] = None) -> Dict[str, Any]:
    """
    Buy the token of a stored pool with SOL.

    Args:
        record_id: Pool record ID in the local store
        sol_amount: SOL to spend (BUY_AMOUNT when omitted)

    Returns:
        Dict containing trade details including:
        - tx_signature: Transaction signature
        - record_id / amm_id: Pool identifiers
        - quote_amount: SOL spent
        - timestamp: Trade timestamp (ms)
        - status: 'confirmed' or 'failed'
    """
    config = SniperConfig()
    amount = Decimal(str(sol_amount)) if sol_amount is not None else config.buy_amount
    ledger = LedgerClient(SOLANA_RPC_URL, SOLANA_WS_URL, RPC_COMMITMENT)
    store = PoolStore(DB_PATH)
    trade_details = {
        'tx_signature': None,
        'record_id': record_id,
        'amm_id': None,
        'quote_amount': amount,
        'timestamp': int(datetime.now().timestamp() * 1000),
        'status': 'failed',
    }
    try:
        record = store.get_pool_record(record_id)
        trade_details['amm_id'] = record.amm_id
        executor = SwapExecutor.from_config(ledger, load_payer_keypair(), config)
        signature = await executor.swap(record, SwapDirection.BASE_TO_QUOTE, amount, decimals=SOL_DECIMALS)
        trade_details.update(tx_signature=signature, status='confirmed')
    except SniperError as e:
        logger.error(f"Error executing buy trade: {e}")
        trade_details['error'] = str(e)
    finally:
        await ledger.close()
        store.close()
    return trade_details


def main():
    setup_logger()
    if len(sys.argv) < 2:
        print("Usage: python -m swap.swap_buy_ammv4 <record_id> [sol_amount]")
        sys.exit(2)
    record_id = sys.argv[1]
    sol_amount = Decimal(sys.argv[2]) if len(sys.argv) > 2 else None
    print(f"🚀 Executing buy transaction:\n   Record ID: {record_id}\n   SOL Amount: {sol_amount or 'BUY_AMOUNT'}")
    result = asyncio.run(execute_buy(record_id, sol_amount))
    if result['status'] == 'confirmed':
        print(f"✅ Buy transaction completed successfully! {result['tx_signature']}")
    else:
        print(f"❌ Buy transaction failed: {result.get('error')}")
        sys.exit(1)


if __name__ == "__main__":
    main()
