"""
Pool monitor for trading new Raydium pools.

A PoolSniper owns one position: it buys once, watches the pool's SOL vault
(polling or account subscription) and sells the whole token balance the first
time the price reaches the target. PoolMonitor keeps one sniper per pool.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from spl.token.instructions import get_associated_token_address

from config import SniperConfig
from errors import (
    InsufficientBalance,
    LedgerError,
    PositionStateError,
    ReserveUnavailable,
    SniperError,
    SubmissionFailure,
)
from logger import log_message
from models import AccountInfo, PoolRecord, SwapDirection
from pricing import SOL_DECIMALS, calculate_price, lamports_to_sol, target_sell_price

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60.0  # seconds


class PositionState(Enum):
    IDLE = 'idle'
    BOUGHT = 'bought'
    WATCHING = 'watching'
    SOLD = 'sold'
    ERROR = 'error'


@dataclass
class TradingPosition:
    record: PoolRecord
    buy_amount: Decimal
    sell_target_percentage: Decimal
    target_price: Decimal
    state: PositionState = PositionState.IDLE
    buy_signature: Optional[str] = None
    sell_signature: Optional[str] = None
    position_id: Optional[int] = None


class PoolSniper:
    def __init__(self, record: PoolRecord, executor, ledger,
                 buy_amount: Decimal, sell_target_percentage: Decimal, store=None):
        """
        Args:
            record: Stored pool record to trade
            executor: SwapExecutor that signs and submits swaps
            ledger: LedgerClient used for vault reads and subscriptions
            buy_amount: SOL to spend on the buy
            sell_target_percentage: Gain over the pool's baseline price that triggers the sell
            store: Optional PoolStore; when given, the position is recorded there
        """
        buy_amount = Decimal(str(buy_amount))
        sell_target_percentage = Decimal(str(sell_target_percentage))
        self.position = TradingPosition(
            record=record,
            buy_amount=buy_amount,
            sell_target_percentage=sell_target_percentage,
            target_price=target_sell_price(record.v, sell_target_percentage),
        )
        self.executor = executor
        self.ledger = ledger
        self.store = store
        self._poll_task: Optional[asyncio.Task] = None
        self._subscription_id: Optional[int] = None
        self._sell_in_flight = False
        self._closed: Optional[asyncio.Event] = None

    @property
    def record(self) -> PoolRecord:
        return self.position.record

    @property
    def state(self) -> PositionState:
        return self.position.state

    @property
    def target_price(self) -> Decimal:
        return self.position.target_price

    @property
    def is_watching(self) -> bool:
        return self._poll_task is not None or self._subscription_id is not None

    def _set_state(self, state: PositionState, **fields):
        self.position.state = state
        if self.store is not None and self.position.position_id is not None:
            self.store.update_position(self.position.position_id, status=state.value, **fields)

    def _fail(self, error: Exception):
        logger.error(f"Position on pool {self.record.amm_id} failed: {error}")
        self._set_state(PositionState.ERROR, error=str(error))

    def _require_state(self, operation: str, *allowed: PositionState):
        if self.state not in allowed:
            raise PositionStateError(
                f"Cannot {operation} pool {self.record.amm_id} while position is {self.state.value}"
            )

    # ── Parameters ─────────────────────────────────────────────

    def set_buy_amount(self, amount: Decimal):
        self._require_state('change buy amount for', PositionState.IDLE, PositionState.BOUGHT)
        self.position.buy_amount = Decimal(str(amount))

    def set_sell_target_price(self, percentage: Decimal):
        """Change the target gain and recompute the sell price from the baseline."""
        self._require_state('change sell target for', PositionState.IDLE, PositionState.BOUGHT)
        percentage = Decimal(str(percentage))
        self.position.sell_target_percentage = percentage
        self.position.target_price = target_sell_price(self.record.v, percentage)
        if self.store is not None and self.position.position_id is not None:
            self.store.update_position(
                self.position.position_id,
                sell_target_percentage=percentage,
                target_price=self.position.target_price,
            )

    # ── Pricing ────────────────────────────────────────────────

    def calculate_price(self, balance: Decimal) -> Decimal:
        return calculate_price(balance, self.record.k)

    async def get_liquidity_balance(self) -> Decimal:
        """SOL held by the pool's native vault."""
        account = await self.ledger.get_account_info(self.record.sol_vault)
        if account is None:
            raise ReserveUnavailable(f"Unable to fetch liquidity balance for vault {self.record.sol_vault}")
        return lamports_to_sol(account.lamports)

    async def get_current_price(self) -> Decimal:
        return self.calculate_price(await self.get_liquidity_balance())

    # ── Trading ────────────────────────────────────────────────

    async def buy(self) -> str:
        self._require_state('buy', PositionState.IDLE)
        logger.info(f"Buying {self.position.buy_amount} SOL of {self.record.token_address}")
        try:
            signature = await self.executor.swap(
                self.record, SwapDirection.BASE_TO_QUOTE, self.position.buy_amount, decimals=SOL_DECIMALS
            )
        except (SubmissionFailure, InsufficientBalance) as e:
            logger.error(f"Buy on pool {self.record.amm_id} failed: {e}")
            raise
        except SniperError as e:
            self._fail(e)
            raise

        self.position.buy_signature = signature
        self.position.state = PositionState.BOUGHT
        if self.store is not None:
            self.position.position_id = self.store.store_position({
                'record_id': self.record.record_id,
                'amm_id': self.record.amm_id,
                'buy_amount': self.position.buy_amount,
                'sell_target_percentage': self.position.sell_target_percentage,
                'target_price': self.position.target_price,
                'buy_tx': signature,
                'status': PositionState.BOUGHT.value,
            })
        log_message(logger, 'TRADE_EXECUTED', {
            'side': 'buy',
            'amm_id': self.record.amm_id,
            'token': self.record.token_address,
            'amount_sol': self.position.buy_amount,
            'target_price': self.position.target_price,
            'tx_signature': signature,
        })
        return signature

    async def _sell(self) -> str:
        """Sell the owner's entire token balance back to SOL."""
        token_account = get_associated_token_address(
            self.executor.owner, self.record.pubkey('token_address')
        )
        raw_balance, decimals = await self.ledger.get_token_balance(token_account)
        amount = Decimal(raw_balance) / (Decimal(10) ** decimals)
        logger.info(f"Selling {amount} of {self.record.token_address} at target price {self.target_price}")
        return await self.executor.swap(
            self.record, SwapDirection.QUOTE_TO_BASE, amount, decimals=decimals
        )

    async def _observe(self, balance: Decimal) -> bool:
        """Compare one vault reading with the target; returns True once the watch is finished."""
        if self._sell_in_flight or self.state != PositionState.WATCHING:
            return True
        price = self.calculate_price(balance)
        logger.info(f"Pool {self.record.amm_id}: vault {balance} SOL, price {price} (target {self.target_price})")
        if price < self.target_price:
            return False

        self._sell_in_flight = True
        try:
            signature = await self._sell()
        except Exception as e:
            self._fail(e)
        else:
            self.position.sell_signature = signature
            self._set_state(PositionState.SOLD, sell_tx=signature)
            log_message(logger, 'POSITION_CLOSED', {
                'amm_id': self.record.amm_id,
                'token': self.record.token_address,
                'price': price,
                'target_price': self.target_price,
                'tx_signature': signature,
            })
        finally:
            await self._teardown_watch()
        return True

    # ── Watching ───────────────────────────────────────────────

    def _begin_watch(self):
        self._require_state('watch', PositionState.BOUGHT)
        if self.is_watching:
            raise PositionStateError(f"Pool {self.record.amm_id} is already being watched")
        self._closed = asyncio.Event()
        self._set_state(PositionState.WATCHING)

    async def watch_price(self, interval: float = DEFAULT_POLL_INTERVAL) -> asyncio.Task:
        """Poll the vault every interval seconds until the target is reached."""
        self._begin_watch()
        logger.info(
            f"Watching pool {self.record.amm_id}: baseline {self.record.v}, "
            f"target {self.target_price} (+{self.position.sell_target_percentage}%)"
        )
        self._poll_task = asyncio.create_task(self._poll_loop(interval))
        return self._poll_task

    async def _poll_loop(self, interval: float):
        while self.state == PositionState.WATCHING:
            await asyncio.sleep(interval)
            try:
                balance = await self.get_liquidity_balance()
            except (ReserveUnavailable, LedgerError) as e:
                logger.warning(f"Price check for pool {self.record.amm_id} failed: {e}")
                continue
            if await self._observe(balance):
                return

    async def subscribe_to_vault(self) -> int:
        """Watch the vault through account-change notifications."""
        self._begin_watch()
        try:
            self._subscription_id = await self.ledger.on_account_change(
                self.record.sol_vault, self._on_vault_change, on_error=self._on_subscription_error
            )
        except LedgerError:
            self._closed.set()
            self._set_state(PositionState.BOUGHT)
            raise
        return self._subscription_id

    async def _on_vault_change(self, account: AccountInfo):
        await self._observe(lamports_to_sol(account.lamports))

    def _on_subscription_error(self, error: Exception):
        """The vault stream was lost: end the watch so it can be restarted."""
        self._subscription_id = None
        if self._sell_in_flight or self.state != PositionState.WATCHING:
            return
        logger.error(f"Lost vault subscription for pool {self.record.amm_id}: {error}")
        if self._closed is not None:
            self._closed.set()
        self._set_state(PositionState.BOUGHT)

    async def _teardown_watch(self):
        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        subscription_id, self._subscription_id = self._subscription_id, None
        if subscription_id is not None:
            await self.ledger.remove_account_change_listener(subscription_id)
        if self._closed is not None:
            self._closed.set()

    async def stop_watching(self):
        """Stop the watch. Safe to call repeatedly; a pending sale is left to finish."""
        if self._sell_in_flight:
            return
        await self._teardown_watch()
        if self.state == PositionState.WATCHING:
            self._set_state(PositionState.BOUGHT)
            logger.info(f"Stopped watching pool {self.record.amm_id}")

    async def wait_closed(self):
        """Wait until the current watch has been torn down."""
        if self._closed is not None:
            await self._closed.wait()


class PoolMonitor:
    def __init__(self, executor, ledger, config: SniperConfig, store=None):
        """Run one buy-then-watch position per pool with shared trading settings."""
        self.executor = executor
        self.ledger = ledger
        self.config = config
        self.store = store
        self.snipers: Dict[str, PoolSniper] = {}

    def active_positions(self) -> List[PoolSniper]:
        return [s for s in self.snipers.values() if s.state in (PositionState.BOUGHT, PositionState.WATCHING)]

    async def start_position(self, record: PoolRecord) -> PoolSniper:
        if record.amm_id in self.snipers:
            raise PositionStateError(f"Pool {record.amm_id} already has a position")

        sniper = PoolSniper(
            record, self.executor, self.ledger,
            buy_amount=self.config.buy_amount,
            sell_target_percentage=self.config.sell_target_percentage,
            store=self.store,
        )
        self.snipers[record.amm_id] = sniper
        try:
            await sniper.buy()
        except SniperError:
            if sniper.state == PositionState.IDLE:
                del self.snipers[record.amm_id]
            raise

        if self.config.watch_mode == 'subscribe':
            await sniper.subscribe_to_vault()
        else:
            await sniper.watch_price(self.config.poll_interval)
        logger.info(f"Started position on pool {record.amm_id} ({self.config.watch_mode} mode)")
        return sniper

    async def stop_position(self, amm_id: str):
        sniper = self.snipers.pop(amm_id, None)
        if sniper is not None:
            await sniper.stop_watching()

    async def stop_all(self):
        """Stop watching all pools."""
        for amm_id in list(self.snipers.keys()):
            await self.stop_position(amm_id)
