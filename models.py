"""
Typed records shared by the resolver, compiler and trading state machine.
"""

from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict, List, Optional

from solders.pubkey import Pubkey
from spl.token.constants import WRAPPED_SOL_MINT

from errors import RecordIncomplete

WSOL_MINT = str(WRAPPED_SOL_MINT)

# Fields a swap instruction cannot be compiled without.
REQUIRED_SWAP_FIELDS = (
    'amm_id', 'amm_authority', 'amm_open_orders', 'token_vault', 'sol_vault',
    'market_program_id', 'market_id', 'market_bids', 'market_asks', 'market_event_queue',
    'market_base_vault', 'market_quote_vault', 'market_authority', 'program_id',
)

ORDER_BOOK_FIELDS = ('market_event_queue', 'market_bids', 'market_asks')

# Stored as strings so u64 amounts and the K product survive JSON untouched.
_STRING_ENCODED_INTS = ('init_base_amount', 'init_quote_amount', 'k')


class SwapDirection(IntEnum):
    """Swap direction; the value is the on-chain opcode."""
    BASE_TO_QUOTE = 9
    QUOTE_TO_BASE = 10


@dataclass(frozen=True)
class PoolRecord:
    """One discovered liquidity pool, as persisted in the document store."""
    program_id: str
    amm_id: str
    amm_authority: str
    amm_open_orders: str
    lp_mint: str
    token_address: str
    sol_address: str
    token_vault: str
    sol_vault: str
    amm_target_orders: str
    deployer: str
    market_program_id: str
    market_id: str
    market_base_vault: str
    market_quote_vault: str
    market_authority: str
    open_time: int
    nonce: int
    init_base_amount: int
    init_quote_amount: int
    k: int
    v: Decimal
    is_wsol_swap: bool
    market_bids: Optional[str] = None
    market_asks: Optional[str] = None
    market_event_queue: Optional[str] = None
    decimals: Optional[int] = None
    record_id: Optional[str] = None

    def missing_swap_fields(self) -> List[str]:
        return [name for name in REQUIRED_SWAP_FIELDS if not getattr(self, name)]

    def validate_for_swap(self) -> None:
        """Raise RecordIncomplete listing every field a swap still needs."""
        missing = self.missing_swap_fields()
        if missing:
            raise RecordIncomplete(missing)

    @property
    def has_order_book(self) -> bool:
        return all(getattr(self, name) for name in ORDER_BOOK_FIELDS)

    def pubkey(self, name: str) -> Pubkey:
        return Pubkey.from_string(getattr(self, name))

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the document store; record_id is owned by the store."""
        document = {}
        for f in fields(self):
            if f.name == 'record_id':
                continue
            value = getattr(self, f.name)
            if f.name in _STRING_ENCODED_INTS or f.name == 'v':
                value = str(value)
            document[f.name] = value
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any], record_id: Optional[str] = None) -> 'PoolRecord':
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in document.items() if key in known}
        for name in _STRING_ENCODED_INTS:
            if name in values:
                values[name] = int(values[name])
        if 'v' in values:
            values['v'] = Decimal(str(values['v']))
        if record_id is not None:
            values['record_id'] = str(record_id)
        return cls(**values)


def normalize_native_side(record: PoolRecord) -> PoolRecord:
    """Put wrapped SOL on the sol_* side of the record.

    When the traded mint is wrapped SOL the token/sol roles are swapped. A
    record whose token side is not wrapped SOL is returned unchanged, so
    applying this to an already-normalized record is a no-op.
    """
    if record.token_address != WSOL_MINT:
        return record
    return replace(
        record,
        token_address=record.sol_address,
        sol_address=record.token_address,
        token_vault=record.sol_vault,
        sol_vault=record.token_vault,
    )


@dataclass(frozen=True)
class SwapIntent:
    record: PoolRecord
    owner: Pubkey
    amount: Decimal
    direction: SwapDirection
    source: Optional[Pubkey] = None
    destination: Optional[Pubkey] = None


@dataclass(frozen=True)
class AccountInfo:
    data: bytes
    lamports: int


@dataclass(frozen=True)
class RawInstruction:
    program_id_index: int
    accounts: List[int]
    data: bytes


@dataclass(frozen=True)
class RawTransaction:
    """Confirmed transaction in the ledger's canonical compiled form."""
    signature: str
    account_keys: List[str]
    instructions: List[RawInstruction] = field(default_factory=list)
