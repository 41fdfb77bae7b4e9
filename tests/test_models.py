from dataclasses import replace
from decimal import Decimal

import pytest

from errors import RecordIncomplete
from models import WSOL_MINT, PoolRecord, normalize_native_side


def test_normalizes_pool_listing_wsol_as_token(sample_record):
    flipped = replace(
        sample_record,
        token_address=sample_record.sol_address,
        sol_address=sample_record.token_address,
        token_vault=sample_record.sol_vault,
        sol_vault=sample_record.token_vault,
    )
    normalized = normalize_native_side(flipped)
    assert normalized.sol_address == WSOL_MINT
    assert normalized.token_address == sample_record.token_address
    assert normalized.sol_vault == sample_record.sol_vault
    assert normalized.token_vault == sample_record.token_vault


def test_normalizing_a_normalized_record_is_a_no_op(sample_record):
    assert normalize_native_side(sample_record) == sample_record
    assert normalize_native_side(normalize_native_side(sample_record)) == sample_record


def test_complete_record_validates(sample_record):
    sample_record.validate_for_swap()
    assert sample_record.has_order_book


def test_validation_lists_every_missing_field(sample_record):
    record = replace(sample_record, market_bids=None, market_asks=None, sol_vault='')
    with pytest.raises(RecordIncomplete) as excinfo:
        record.validate_for_swap()
    assert set(excinfo.value.missing_fields) == {'market_bids', 'market_asks', 'sol_vault'}
    assert not record.has_order_book


def test_document_round_trip_keeps_exact_numbers(sample_record):
    document = sample_record.to_document()
    assert 'record_id' not in document
    assert document['k'] == '500000000000000000'
    assert document['v'] == '0.5'
    restored = PoolRecord.from_document(document, record_id='1')
    assert restored == sample_record
    assert isinstance(restored.v, Decimal)
    assert isinstance(restored.k, int)
