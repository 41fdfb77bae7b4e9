"""
Raydium AMM v4 swap instruction builder.

Produces the ordered instruction list for one swap against a stored pool
record: compute budget, optional wrapped-SOL setup, the swap itself and the
wrapped-SOL cleanup. Nothing here signs or submits.
"""

from decimal import Decimal, ROUND_FLOOR
from typing import List

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.constants import TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT
from spl.token.instructions import (
    CloseAccountParams,
    SyncNativeParams,
    close_account,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    sync_native,
)

from errors import InvalidAmount
from models import PoolRecord, SwapDirection, SwapIntent
from swap.layouts import encode_swap_payload

DEFAULT_DECIMALS = 9
DEFAULT_COMPUTE_UNIT_LIMIT = 200_000
DEFAULT_COMPUTE_UNIT_PRICE = 10_000  # micro-lamports per compute unit


def to_raw_amount(amount, decimals: int = DEFAULT_DECIMALS) -> int:
    """Scale a UI amount to integer units, rounding down."""
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    raw = int(scaled.to_integral_value(rounding=ROUND_FLOOR))
    if raw <= 0:
        raise InvalidAmount(f"Amount {amount} is zero or negative at {decimals} decimals")
    return raw


def _spent_and_received_mints(record: PoolRecord, direction: SwapDirection):
    if direction == SwapDirection.BASE_TO_QUOTE:
        return Pubkey.from_string(record.sol_address), Pubkey.from_string(record.token_address)
    return Pubkey.from_string(record.token_address), Pubkey.from_string(record.sol_address)


def _swap_accounts(record: PoolRecord, source: Pubkey, destination: Pubkey, owner: Pubkey) -> List[AccountMeta]:
    def writable(name):
        return AccountMeta(record.pubkey(name), is_signer=False, is_writable=True)

    def readonly(name):
        return AccountMeta(record.pubkey(name), is_signer=False, is_writable=False)

    return [
        writable('amm_id'),
        readonly('amm_authority'),
        writable('amm_open_orders'),
        writable('token_vault'),
        writable('sol_vault'),
        readonly('market_program_id'),
        writable('market_id'),
        writable('market_bids'),
        writable('market_asks'),
        writable('market_event_queue'),
        writable('market_base_vault'),
        writable('market_quote_vault'),
        readonly('market_authority'),
        AccountMeta(source, is_signer=False, is_writable=True),
        AccountMeta(destination, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=True, is_writable=False),
    ]


def build_swap_instructions(
    intent: SwapIntent,
    decimals: int = DEFAULT_DECIMALS,
    compute_unit_limit: int = DEFAULT_COMPUTE_UNIT_LIMIT,
    compute_unit_price: int = DEFAULT_COMPUTE_UNIT_PRICE,
) -> List[Instruction]:
    """
    Compile a swap intent into an ordered instruction list.

    For pools paired against wrapped SOL the native side goes through the
    owner's wrapped-SOL associated account: it is created (and funded when SOL
    is being spent) before the swap and closed back to the owner afterwards.

    Raises:
        RecordIncomplete: the record lacks an address the swap needs
        InvalidAmount: the amount scales to zero or less
    """
    record = intent.record
    record.validate_for_swap()
    direction = SwapDirection(intent.direction)
    raw_amount = to_raw_amount(intent.amount, decimals)
    owner = intent.owner

    spent_mint, received_mint = _spent_and_received_mints(record, direction)
    source = intent.source or get_associated_token_address(owner, spent_mint)
    destination = intent.destination or get_associated_token_address(owner, received_mint)

    instructions = [
        set_compute_unit_limit(compute_unit_limit),
        set_compute_unit_price(compute_unit_price),
    ]
    cleanup = []

    if record.is_wsol_swap:
        temp_account = get_associated_token_address(owner, WRAPPED_SOL_MINT)
        instructions.append(create_idempotent_associated_token_account(owner, owner, WRAPPED_SOL_MINT))
        if direction == SwapDirection.BASE_TO_QUOTE:
            instructions.append(transfer(TransferParams(
                from_pubkey=owner,
                to_pubkey=temp_account,
                lamports=raw_amount,
            )))
            instructions.append(sync_native(SyncNativeParams(program_id=TOKEN_PROGRAM_ID, account=temp_account)))
            source = temp_account
        else:
            destination = temp_account
        cleanup.append(close_account(CloseAccountParams(
            program_id=TOKEN_PROGRAM_ID,
            account=temp_account,
            dest=owner,
            owner=owner,
            signers=[],
        )))

    instructions.append(Instruction(
        Pubkey.from_string(record.program_id),
        encode_swap_payload(direction, raw_amount),
        _swap_accounts(record, source, destination, owner),
    ))
    instructions.extend(cleanup)
    return instructions
