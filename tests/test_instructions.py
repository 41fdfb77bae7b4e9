from dataclasses import replace
from decimal import Decimal

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT
from spl.token.instructions import get_associated_token_address

from errors import InvalidAmount, RecordIncomplete
from models import SwapDirection, SwapIntent
from swap.instructions import build_swap_instructions, to_raw_amount

COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

SWAP_ACCOUNT_FIELDS = [
    'amm_id', 'amm_authority', 'amm_open_orders', 'token_vault', 'sol_vault',
    'market_program_id', 'market_id', 'market_bids', 'market_asks', 'market_event_queue',
    'market_base_vault', 'market_quote_vault', 'market_authority',
]
READONLY_FIELDS = {'amm_authority', 'market_program_id', 'market_authority'}


@pytest.fixture
def owner():
    return Keypair().pubkey()


def swap_instruction(instructions, record):
    return next(ix for ix in instructions if ix.program_id == record.pubkey('program_id'))


def test_raw_amount_rounds_down():
    assert to_raw_amount(Decimal('1.23456789'), 6) == 1_234_567
    assert to_raw_amount(Decimal('0.0000000019'), 9) == 1
    assert to_raw_amount('0.05', 9) == 50_000_000


@pytest.mark.parametrize("amount", ['0', '-1', '0.0000000009'])
def test_raw_amount_rejects_amounts_that_floor_to_zero(amount):
    with pytest.raises(InvalidAmount):
        to_raw_amount(Decimal(amount), 9)


def test_swap_accounts_follow_program_order(sample_record, owner):
    intent = SwapIntent(sample_record, owner, Decimal('0.05'), SwapDirection.BASE_TO_QUOTE)
    swap = swap_instruction(build_swap_instructions(intent), sample_record)

    metas = swap.accounts
    assert len(metas) == 16
    expected = [sample_record.pubkey(name) for name in SWAP_ACCOUNT_FIELDS]
    assert [m.pubkey for m in metas[:13]] == expected
    for name, meta in zip(SWAP_ACCOUNT_FIELDS, metas):
        assert meta.is_writable == (name not in READONLY_FIELDS)
    assert metas[13].is_writable and metas[14].is_writable
    assert metas[15].pubkey == owner
    assert [m.is_signer for m in metas] == [False] * 15 + [True]


def test_compute_budget_comes_first(sample_record, owner):
    intent = SwapIntent(sample_record, owner, Decimal('0.05'), SwapDirection.BASE_TO_QUOTE)
    limit_ix, price_ix = build_swap_instructions(intent)[:2]
    assert limit_ix.program_id == COMPUTE_BUDGET_PROGRAM_ID
    assert price_ix.program_id == COMPUTE_BUDGET_PROGRAM_ID
    assert bytes(limit_ix.data) == bytes([2]) + (200_000).to_bytes(4, 'little')
    assert bytes(price_ix.data) == bytes([3]) + (10_000).to_bytes(8, 'little')


def test_wsol_buy_wraps_and_closes_temporary_account(sample_record, owner):
    intent = SwapIntent(sample_record, owner, Decimal('0.05'), SwapDirection.BASE_TO_QUOTE)
    instructions = build_swap_instructions(intent)
    temp_account = get_associated_token_address(owner, WRAPPED_SOL_MINT)

    programs = [ix.program_id for ix in instructions]
    assert programs == [
        COMPUTE_BUDGET_PROGRAM_ID,
        COMPUTE_BUDGET_PROGRAM_ID,
        ASSOCIATED_TOKEN_PROGRAM_ID,
        SYSTEM_PROGRAM_ID,
        TOKEN_PROGRAM_ID,
        sample_record.pubkey('program_id'),
        TOKEN_PROGRAM_ID,
    ]
    # CreateIdempotent, so a wallet that already holds the account can still swap
    create_ix = instructions[2]
    assert bytes(create_ix.data) == bytes([1])
    assert create_ix.accounts[1].pubkey == temp_account

    transfer_ix = instructions[3]
    assert int.from_bytes(bytes(transfer_ix.data)[4:12], 'little') == 50_000_000

    swap = instructions[5]
    assert bytes(swap.data) == bytes([9]) + (50_000_000).to_bytes(8, 'little')
    assert swap.accounts[13].pubkey == temp_account
    assert swap.accounts[14].pubkey == get_associated_token_address(owner, sample_record.pubkey('token_address'))

    close_ix = instructions[6]
    assert close_ix.accounts[0].pubkey == temp_account
    assert close_ix.accounts[1].pubkey == owner


def test_wsol_sell_receives_into_temporary_account(sample_record, owner):
    intent = SwapIntent(sample_record, owner, Decimal('1234.5'), SwapDirection.QUOTE_TO_BASE)
    instructions = build_swap_instructions(intent, decimals=6)
    temp_account = get_associated_token_address(owner, WRAPPED_SOL_MINT)

    assert len(instructions) == 5
    swap = instructions[3]
    assert bytes(swap.data) == bytes([10]) + (1_234_500_000).to_bytes(8, 'little')
    assert swap.accounts[13].pubkey == get_associated_token_address(owner, sample_record.pubkey('token_address'))
    assert swap.accounts[14].pubkey == temp_account
    assert instructions[4].program_id == TOKEN_PROGRAM_ID
    assert instructions[4].accounts[0].pubkey == temp_account


def test_non_native_pool_uses_associated_accounts_without_wrapping(sample_record, owner):
    record = replace(sample_record, sol_address=USDC_MINT, is_wsol_swap=False)
    intent = SwapIntent(record, owner, Decimal('5'), SwapDirection.BASE_TO_QUOTE)
    instructions = build_swap_instructions(intent, decimals=6)

    assert len(instructions) == 3
    swap = instructions[2]
    assert swap.accounts[13].pubkey == get_associated_token_address(owner, Pubkey.from_string(USDC_MINT))
    assert swap.accounts[14].pubkey == get_associated_token_address(owner, record.pubkey('token_address'))


def test_explicit_source_and_destination_are_used(sample_record, owner):
    record = replace(sample_record, is_wsol_swap=False)
    source, destination = Keypair().pubkey(), Keypair().pubkey()
    intent = SwapIntent(record, owner, Decimal('1'), SwapDirection.QUOTE_TO_BASE, source, destination)
    swap = swap_instruction(build_swap_instructions(intent), record)
    assert swap.accounts[13].pubkey == source
    assert swap.accounts[14].pubkey == destination


def test_incomplete_record_is_rejected(sample_record, owner):
    record = replace(sample_record, market_bids=None, market_event_queue=None)
    intent = SwapIntent(record, owner, Decimal('0.05'), SwapDirection.BASE_TO_QUOTE)
    with pytest.raises(RecordIncomplete) as excinfo:
        build_swap_instructions(intent)
    assert set(excinfo.value.missing_fields) == {'market_bids', 'market_event_queue'}


def test_zero_amount_is_rejected(sample_record, owner):
    intent = SwapIntent(sample_record, owner, Decimal('0'), SwapDirection.BASE_TO_QUOTE)
    with pytest.raises(InvalidAmount):
        build_swap_instructions(intent)
