"""
Solana ledger client used by the sniper core.

Wraps solana-py's AsyncClient for RPC calls and its websocket API for account
change subscriptions, and converts responses into the library-neutral records
in models.py. RPC failures surface as LedgerError.
"""

import asyncio
import functools
import itertools
import logging
from typing import Awaitable, Callable, Dict, Optional, Tuple

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException, UnconfirmedTxError
from solana.rpc.websocket_api import connect
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from errors import LedgerError
from models import AccountInfo, RawInstruction, RawTransaction

logger = logging.getLogger(__name__)

AccountCallback = Callable[[AccountInfo], Awaitable[None]]
ErrorCallback = Callable[[Exception], None]

SUBSCRIBE_TIMEOUT = 10.0

_RPC_ERRORS = (SolanaRpcException, RPCException, UnconfirmedTxError)


def _as_pubkey(address) -> Pubkey:
    return address if isinstance(address, Pubkey) else Pubkey.from_string(str(address))


class LedgerClient:
    def __init__(self, rpc_url: str, ws_url: str, commitment: str = 'confirmed'):
        self.rpc_url = rpc_url
        self.ws_url = ws_url
        self.commitment = Commitment(commitment)
        self.client = AsyncClient(rpc_url, commitment=self.commitment)
        self._subscriptions: Dict[int, asyncio.Task] = {}
        self._subscription_ids = itertools.count(1)

    async def get_account_info(self, address) -> Optional[AccountInfo]:
        try:
            resp = await self.client.get_account_info(_as_pubkey(address), encoding='base64')
        except _RPC_ERRORS as e:
            raise LedgerError(f"getAccountInfo failed for {address}: {e}") from e
        if resp.value is None:
            return None
        return AccountInfo(data=bytes(resp.value.data), lamports=resp.value.lamports)

    async def get_balance(self, address) -> int:
        """Native balance in lamports."""
        try:
            resp = await self.client.get_balance(_as_pubkey(address))
        except _RPC_ERRORS as e:
            raise LedgerError(f"getBalance failed for {address}: {e}") from e
        return resp.value

    async def get_token_balance(self, address) -> Tuple[int, int]:
        """Raw amount and decimals held by an SPL token account."""
        try:
            resp = await self.client.get_token_account_balance(_as_pubkey(address))
        except _RPC_ERRORS as e:
            raise LedgerError(f"getTokenAccountBalance failed for {address}: {e}") from e
        return int(resp.value.amount), resp.value.decimals

    async def get_transaction(self, signature: str) -> Optional[RawTransaction]:
        try:
            resp = await self.client.get_transaction(
                Signature.from_string(signature),
                encoding='base64',
                commitment=self.commitment,
                max_supported_transaction_version=0,
            )
        except _RPC_ERRORS as e:
            raise LedgerError(f"getTransaction failed for {signature}: {e}") from e
        if resp.value is None:
            return None

        encoded = resp.value.transaction
        message = encoded.transaction.message
        account_keys = [str(key) for key in message.account_keys]
        # v0 transactions append lookup-table addresses after the static keys
        meta = encoded.meta
        if meta is not None and meta.loaded_addresses is not None:
            account_keys.extend(str(key) for key in meta.loaded_addresses.writable)
            account_keys.extend(str(key) for key in meta.loaded_addresses.readonly)

        instructions = [
            RawInstruction(
                program_id_index=ix.program_id_index,
                accounts=list(ix.accounts),
                data=bytes(ix.data),
            )
            for ix in message.instructions
        ]
        return RawTransaction(signature=signature, account_keys=account_keys, instructions=instructions)

    async def get_latest_blockhash(self) -> Hash:
        try:
            resp = await self.client.get_latest_blockhash()
        except _RPC_ERRORS as e:
            raise LedgerError(f"getLatestBlockhash failed: {e}") from e
        return resp.value.blockhash

    async def send_transaction(self, transaction: VersionedTransaction) -> str:
        try:
            resp = await self.client.send_transaction(transaction)
        except _RPC_ERRORS as e:
            raise LedgerError(f"sendTransaction failed: {e}") from e
        return str(resp.value)

    async def confirm_transaction(self, signature: str) -> None:
        try:
            resp = await self.client.confirm_transaction(Signature.from_string(signature), self.commitment)
        except _RPC_ERRORS as e:
            raise LedgerError(f"Transaction {signature} was not confirmed: {e}") from e
        status = resp.value[0] if resp.value else None
        if status is not None and status.err is not None:
            raise LedgerError(f"Transaction {signature} failed on-chain: {status.err}")

    async def on_account_change(self, address, callback: AccountCallback, on_error: Optional[ErrorCallback] = None) -> int:
        """Invoke callback for every change of address; returns a subscription id.

        Returns once the node has confirmed the subscription and raises LedgerError
        if it cannot be opened. If the stream fails later, the subscription is
        dropped and on_error is called with a LedgerError.
        """
        subscription_id = next(self._subscription_ids)
        ready = asyncio.get_running_loop().create_future()
        task = asyncio.create_task(
            self._account_subscription(subscription_id, _as_pubkey(address), callback, ready)
        )
        self._subscriptions[subscription_id] = task

        await asyncio.wait({ready, task}, timeout=SUBSCRIBE_TIMEOUT, return_when=asyncio.FIRST_COMPLETED)
        if not ready.done():
            self._subscriptions.pop(subscription_id, None)
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise LedgerError(f"Account subscription for {address} was not confirmed within {SUBSCRIBE_TIMEOUT}s")
            error = None if task.cancelled() else task.exception()
            raise LedgerError(f"Account subscription for {address} failed: {error!r}") from error

        task.add_done_callback(functools.partial(self._subscription_done, subscription_id, on_error))
        logger.info(f"Subscribed to account changes for {address} (subscription {subscription_id})")
        return subscription_id

    async def _account_subscription(self, subscription_id: int, address: Pubkey,
                                    callback: AccountCallback, ready: asyncio.Future):
        async with connect(self.ws_url) as websocket:
            await websocket.account_subscribe(address, commitment=self.commitment, encoding='base64')
            await websocket.recv()  # subscription confirmation
            ready.set_result(subscription_id)
            async for messages in websocket:
                for message in messages:
                    value = message.result.value
                    await callback(AccountInfo(data=bytes(value.data), lamports=value.lamports))
                    if subscription_id not in self._subscriptions:
                        return

    def _subscription_done(self, subscription_id: int, on_error: Optional[ErrorCallback], task: asyncio.Task):
        # Removed subscriptions end quietly; anything else is a lost stream.
        if task.cancelled() or self._subscriptions.pop(subscription_id, None) is None:
            return
        cause = task.exception()
        if cause is None:
            error = LedgerError(f"Account subscription {subscription_id} was closed by the node")
        else:
            error = LedgerError(f"Account subscription {subscription_id} failed: {cause!r}")
            error.__cause__ = cause
        logger.error(str(error))
        if on_error is not None:
            on_error(error)

    async def remove_account_change_listener(self, subscription_id: int) -> None:
        """Stop a subscription. Unknown or already removed ids are ignored."""
        task = self._subscriptions.pop(subscription_id, None)
        if task is None:
            return
        # Called from inside the subscription's own callback: the loop exits on its own.
        if task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info(f"Removed account subscription {subscription_id}")

    async def close(self):
        for subscription_id in list(self._subscriptions):
            await self.remove_account_change_listener(subscription_id)
        await self.client.close()
