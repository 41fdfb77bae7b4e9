"""
Raydium new pool listener.

Subscribes to the AMM program's logs over the Solana websocket, resolves every
pool-creation transaction into a stored PoolRecord and, when AUTO_SNIPE=1,
opens a buy-then-watch position on it.
"""

import asyncio
import logging
from typing import Optional, Set

from colorama import init, Fore, Style
from solana.rpc.websocket_api import connect
from solders.pubkey import Pubkey
from solders.rpc.config import RpcTransactionLogsFilterMentions
from websockets.exceptions import WebSocketException

from config import (
    DB_PATH,
    RAYDIUM_AMM_PROGRAM_ID,
    RPC_COMMITMENT,
    SOLANA_RPC_URL,
    SOLANA_WS_URL,
    SniperConfig,
    load_payer_keypair,
)
from db_manager import PoolStore
from errors import SniperError
from ledger_client import LedgerClient
from logger import log_message, setup_logger
from pool_monitor import PoolMonitor
from pool_resolver import PoolResolver
from swap.executor import SwapExecutor

# Initialize colorama for cross-platform colored terminal output
init()

logger = logging.getLogger(__name__)

POOL_CREATION_LOG = 'initialize2'
MAX_BACKOFF = 30  # seconds


class PoolListener:
    def __init__(self, ws_url: str, program_id: str, resolver: PoolResolver,
                 monitor: Optional[PoolMonitor] = None, commitment: str = 'confirmed'):
        self.ws_url = ws_url
        self.program_id = Pubkey.from_string(program_id)
        self.resolver = resolver
        self.monitor = monitor
        self.commitment = commitment
        self._running = False
        self._seen: Set[str] = set()
        self._position_tasks: Set[asyncio.Task] = set()
        # Stats
        self.pools_detected = 0
        self.pools_skipped = 0

    async def start(self):
        """Listen for new pools, reconnecting with exponential backoff."""
        self._running = True
        logger.info(f"Starting listener for program {self.program_id}")

        backoff = 1
        while self._running:
            try:
                await self._connect_and_listen()
                backoff = 1  # reset on clean exit
            except (WebSocketException, OSError, asyncio.TimeoutError) as e:
                logger.error(f"Solana WebSocket error: {e}")
                print(f"{Fore.YELLOW}⚠️  Connection lost, reconnecting in {backoff}s...{Style.RESET_ALL}")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)

    def stop(self):
        self._running = False

    async def _connect_and_listen(self):
        """Single WebSocket connection lifecycle."""
        logger.info(f"Connecting to {self.ws_url}...")
        async with connect(self.ws_url) as websocket:
            await websocket.logs_subscribe(
                RpcTransactionLogsFilterMentions(self.program_id), commitment=self.commitment
            )
            first = await websocket.recv()
            logger.info(f"Subscription active (id={first[0].result})")
            print(f"{Fore.GREEN}✅ Connected. Waiting for new Raydium pools...{Style.RESET_ALL}")

            async for messages in websocket:
                if not self._running:
                    break
                for message in messages:
                    await self.handle_notification(message.result.value)

    async def handle_notification(self, value):
        """Process one logsNotification value (signature, err, logs)."""
        if value.err is not None:
            return
        if not any(POOL_CREATION_LOG in line for line in (value.logs or [])):
            return

        signature = str(value.signature)
        if signature in self._seen:
            return
        self._seen.add(signature)

        try:
            record = await self.resolver.process_signature(signature)
        except SniperError as e:
            self.pools_skipped += 1
            logger.error(f"Could not resolve pool from {signature}: {e}")
            return
        if record is None:
            self.pools_skipped += 1
            return

        self.pools_detected += 1
        self._announce(record, signature)
        if self.monitor is not None:
            # Buys confirm slowly; keep reading logs while they run.
            task = asyncio.create_task(self._start_position(record))
            self._position_tasks.add(task)
            task.add_done_callback(self._position_tasks.discard)

    async def _start_position(self, record):
        try:
            await self.monitor.start_position(record)
        except SniperError as e:
            logger.error(f"Could not open position on pool {record.amm_id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error opening position on pool {record.amm_id}: {e!r}")

    async def wait_for_positions(self):
        """Wait for positions that are still being opened."""
        if self._position_tasks:
            await asyncio.gather(*self._position_tasks, return_exceptions=True)

    def _announce(self, record, signature: str):
        print(f"\n{Fore.MAGENTA}🚀 NEW POOL DISCOVERED!{Style.RESET_ALL}")
        print(f"{Fore.CYAN}Pool ID:     {record.amm_id}{Style.RESET_ALL}")
        print(f"{Fore.CYAN}Token:       {record.token_address}{Style.RESET_ALL}")
        print(f"{Fore.CYAN}SOL vault:   {record.sol_vault}{Style.RESET_ALL}")
        print(f"{Fore.CYAN}Baseline V:  {record.v}{Style.RESET_ALL}")
        print(f"{Fore.CYAN}Record ID:   {record.record_id}{Style.RESET_ALL}")
        if not record.has_order_book:
            print(f"{Fore.YELLOW}⚠️  Order book not resolved yet{Style.RESET_ALL}")
        log_message(logger, 'NEW_POOL', {
            'signature': signature,
            'record_id': record.record_id,
            'amm_id': record.amm_id,
            'token': record.token_address,
            'sol_vault': record.sol_vault,
            'k': record.k,
            'v': record.v,
            'is_wsol_swap': record.is_wsol_swap,
        })


async def main():
    setup_logger()
    config = SniperConfig()
    ledger = LedgerClient(SOLANA_RPC_URL, SOLANA_WS_URL, RPC_COMMITMENT)
    store = PoolStore(DB_PATH)
    resolver = PoolResolver(ledger, store, RAYDIUM_AMM_PROGRAM_ID)

    monitor = None
    if config.auto_snipe:
        executor = SwapExecutor.from_config(ledger, load_payer_keypair(), config)
        monitor = PoolMonitor(executor, ledger, config, store=store)
        print(f"{Fore.MAGENTA}[MODE] Auto-snipe enabled: {config.buy_amount} SOL per pool, "
              f"sell at +{config.sell_target_percentage}%{Style.RESET_ALL}")
    else:
        print(f"{Fore.CYAN}[MODE] Listen only (set AUTO_SNIPE=1 to trade){Style.RESET_ALL}")

    listener = PoolListener(SOLANA_WS_URL, RAYDIUM_AMM_PROGRAM_ID, resolver, monitor, RPC_COMMITMENT)
    try:
        await listener.start()
    finally:
        print(f"\n{Fore.YELLOW}⏳ Shutting down...{Style.RESET_ALL}")
        listener.stop()
        await listener.wait_for_positions()
        if monitor is not None:
            await monitor.stop_all()
        await ledger.close()
        store.close()
        logger.info(f"Listener stopped: {listener.pools_detected} pools detected, {listener.pools_skipped} skipped")
        print(f"{Fore.GREEN}✅ Shutdown complete{Style.RESET_ALL}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print(f"{Fore.YELLOW}🛑 Shutdown requested (Ctrl+C){Style.RESET_ALL}")
