"""
Turns a confirmed pool-creation transaction into a persisted PoolRecord.

The resolver locates the AMM's initialize instruction, decodes its payload and
account list, puts wrapped SOL on the sol side, looks up the order-book
addresses in the linked market account and stores the result.
"""

import logging
from typing import Optional

from db_manager import PoolStore, RecordId
from errors import LedgerError, MalformedAccount, MissingAccountKey
from models import WSOL_MINT, PoolRecord, RawInstruction, RawTransaction, normalize_native_side
from pricing import compute_k, compute_v
from swap.layouts import decode_order_book_extras, decode_pool_creation_payload

logger = logging.getLogger(__name__)

# Positions inside the initialize instruction's account list.
AMM_ID_INDEX = 4
AMM_AUTHORITY_INDEX = 5
AMM_OPEN_ORDERS_INDEX = 6
LP_MINT_INDEX = 7
COIN_MINT_INDEX = 8
PC_MINT_INDEX = 9
COIN_VAULT_INDEX = 10
PC_VAULT_INDEX = 11
AMM_TARGET_ORDERS_INDEX = 13
MARKET_PROGRAM_INDEX = 15
MARKET_ID_INDEX = 16
DEPLOYER_INDEX = 17
MARKET_BASE_VAULT_INDEX = 18
MARKET_QUOTE_VAULT_INDEX = 19
MARKET_AUTHORITY_INDEX = 20


class PoolResolver:
    def __init__(self, ledger, store: PoolStore, program_id: str):
        self.ledger = ledger
        self.store = store
        self.program_id = str(program_id)

    def _find_pool_instruction(self, tx: RawTransaction) -> Optional[RawInstruction]:
        for ix in tx.instructions:
            if ix.program_id_index >= len(tx.account_keys):
                continue
            if tx.account_keys[ix.program_id_index] == self.program_id and ix.data:
                return ix
        return None

    @staticmethod
    def _account_at(tx: RawTransaction, ix: RawInstruction, position: int) -> str:
        if position >= len(ix.accounts):
            raise MissingAccountKey(
                f"Instruction in {tx.signature} has {len(ix.accounts)} accounts, no index {position}"
            )
        key_index = ix.accounts[position]
        if key_index >= len(tx.account_keys):
            raise MissingAccountKey(
                f"Account index {key_index} in {tx.signature} is outside the {len(tx.account_keys)} loaded keys"
            )
        return tx.account_keys[key_index]

    def extract_pool_record(self, tx: RawTransaction) -> Optional[PoolRecord]:
        """Decode the first matching pool-creation instruction, or return None."""
        ix = self._find_pool_instruction(tx)
        if ix is None:
            return None

        params = decode_pool_creation_payload(ix.data)

        def account(position: int) -> str:
            return self._account_at(tx, ix, position)

        coin_mint = account(COIN_MINT_INDEX)
        pc_mint = account(PC_MINT_INDEX)
        return PoolRecord(
            program_id=self.program_id,
            amm_id=account(AMM_ID_INDEX),
            amm_authority=account(AMM_AUTHORITY_INDEX),
            amm_open_orders=account(AMM_OPEN_ORDERS_INDEX),
            lp_mint=account(LP_MINT_INDEX),
            token_address=coin_mint,
            sol_address=pc_mint,
            token_vault=account(COIN_VAULT_INDEX),
            sol_vault=account(PC_VAULT_INDEX),
            amm_target_orders=account(AMM_TARGET_ORDERS_INDEX),
            deployer=account(DEPLOYER_INDEX),
            market_program_id=account(MARKET_PROGRAM_INDEX),
            market_id=account(MARKET_ID_INDEX),
            market_base_vault=account(MARKET_BASE_VAULT_INDEX),
            market_quote_vault=account(MARKET_QUOTE_VAULT_INDEX),
            market_authority=account(MARKET_AUTHORITY_INDEX),
            open_time=params.open_time,
            nonce=params.nonce,
            init_base_amount=params.init_base_amount,
            init_quote_amount=params.init_quote_amount,
            k=compute_k(params.init_base_amount, params.init_quote_amount),
            v=compute_v(params.init_base_amount, params.init_quote_amount),
            is_wsol_swap=WSOL_MINT in (coin_mint, pc_mint),
        )

    async def _enrich_with_market(self, record: PoolRecord) -> PoolRecord:
        """Fill in bids, asks and event queue; failures leave the record as it was."""
        try:
            market = await self.ledger.get_account_info(record.market_id)
            if market is None:
                logger.warning(f"Market account {record.market_id} not found for pool {record.amm_id}")
                return record
            extras = decode_order_book_extras(market.data)
        except (MalformedAccount, LedgerError) as e:
            logger.warning(f"Could not read order book for pool {record.amm_id}: {e}")
            return record

        return PoolRecord.from_document(
            dict(
                record.to_document(),
                market_event_queue=extras.event_queue,
                market_bids=extras.bids,
                market_asks=extras.asks,
            ),
            record_id=record.record_id,
        )

    async def resolve_transaction(self, tx: RawTransaction) -> Optional[PoolRecord]:
        try:
            record = self.extract_pool_record(tx)
        except MissingAccountKey as e:
            logger.info(f"Skipping transaction {tx.signature}: {e}")
            return None
        if record is None:
            return None

        record = normalize_native_side(record)
        record = await self._enrich_with_market(record)
        record_id = self.store.insert_one(record.to_document())
        logger.info(f"New pool {record.amm_id} stored as record {record_id} (token {record.token_address})")
        return PoolRecord.from_document(record.to_document(), record_id=record_id)

    async def process_signature(self, signature: str) -> Optional[PoolRecord]:
        """Fetch a transaction by signature and resolve it; None if the ledger has no such transaction."""
        tx = await self.ledger.get_transaction(signature)
        if tx is None:
            logger.warning(f"Transaction {signature} not found")
            return None
        return await self.resolve_transaction(tx)

    def load_record(self, record_id: RecordId) -> PoolRecord:
        return self.store.get_pool_record(record_id)

    async def enrich_record(self, record_id: RecordId) -> PoolRecord:
        """Retry the order-book lookup for a stored record that lacks it."""
        record = self.load_record(record_id)
        if record.has_order_book:
            return record
        enriched = await self._enrich_with_market(record)
        if enriched.has_order_book:
            self.store.update_one(record_id, {
                'market_event_queue': enriched.market_event_queue,
                'market_bids': enriched.market_bids,
                'market_asks': enriched.market_asks,
            })
            logger.info(f"Order book added to pool record {record_id}")
        return enriched
