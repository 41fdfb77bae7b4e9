"""
Signs, submits and confirms swaps built by swap.instructions.
"""

import logging
from decimal import Decimal
from typing import Optional

from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from errors import InsufficientBalance, LedgerError, SubmissionFailure
from models import PoolRecord, SwapDirection, SwapIntent
from pricing import LAMPORTS_PER_SOL
from swap.instructions import (
    DEFAULT_COMPUTE_UNIT_LIMIT,
    DEFAULT_COMPUTE_UNIT_PRICE,
    DEFAULT_DECIMALS,
    build_swap_instructions,
)

logger = logging.getLogger(__name__)

MIN_SOL_RESERVE = Decimal('0.05')


class SwapExecutor:
    def __init__(self, ledger, payer: Keypair,
                 compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT,
                 compute_unit_price: int = DEFAULT_COMPUTE_UNIT_PRICE,
                 min_sol_reserve: Decimal = MIN_SOL_RESERVE,
                 default_decimals: int = DEFAULT_DECIMALS):
        self.ledger = ledger
        self.payer = payer
        self.compute_unit_limit = compute_unit_limit
        self.compute_unit_price = compute_unit_price
        self.min_sol_reserve = Decimal(str(min_sol_reserve))
        self.default_decimals = default_decimals

    @classmethod
    def from_config(cls, ledger, payer: Keypair, config) -> 'SwapExecutor':
        return cls(
            ledger, payer,
            compute_unit_limit=config.compute_unit_limit,
            compute_unit_price=config.compute_unit_price,
            min_sol_reserve=config.min_sol_reserve,
            default_decimals=config.default_decimals,
        )

    @property
    def owner(self) -> Pubkey:
        return self.payer.pubkey()

    async def ensure_balance(self) -> int:
        """Return the wallet balance in lamports, refusing to trade below the reserve."""
        balance = await self.ledger.get_balance(self.owner)
        reserve = int(self.min_sol_reserve * LAMPORTS_PER_SOL)
        if balance < reserve:
            raise InsufficientBalance(
                f"Wallet {self.owner} holds {balance} lamports, below the {self.min_sol_reserve} SOL reserve"
            )
        return balance

    async def swap(self, record: PoolRecord, direction: SwapDirection, amount: Decimal,
                   source: Optional[Pubkey] = None, destination: Optional[Pubkey] = None,
                   decimals: Optional[int] = None) -> str:
        """Execute one swap and return its confirmed signature."""
        await self.ensure_balance()

        intent = SwapIntent(
            record=record,
            owner=self.owner,
            amount=Decimal(str(amount)),
            direction=SwapDirection(direction),
            source=source,
            destination=destination,
        )
        instructions = build_swap_instructions(
            intent,
            decimals=self.default_decimals if decimals is None else decimals,
            compute_unit_limit=self.compute_unit_limit,
            compute_unit_price=self.compute_unit_price,
        )

        try:
            blockhash = await self.ledger.get_latest_blockhash()
            message = MessageV0.try_compile(
                payer=self.owner,
                instructions=instructions,
                address_lookup_table_accounts=[],
                recent_blockhash=blockhash,
            )
            transaction = VersionedTransaction(message, [self.payer])
            signature = await self.ledger.send_transaction(transaction)
            logger.info(f"Swap {intent.direction.name} on pool {record.amm_id} submitted: {signature}")
            await self.ledger.confirm_transaction(signature)
        except LedgerError as e:
            raise SubmissionFailure(f"Swap on pool {record.amm_id} failed: {e}") from e

        logger.info(f"Swap confirmed: {signature}")
        return signature
