"""
Fixed-offset byte layouts for Raydium AMM v4 pool creation, the linked
order-book market account, and the swap instruction payload.

Offsets are part of the on-chain protocol. Do not derive them dynamically.
"""

import struct
from typing import NamedTuple

from solders.pubkey import Pubkey

from errors import InvalidAmount, MalformedAccount, MalformedPayload
from models import SwapDirection

# Pool-creation (initialize2) payload, little-endian:
#    0      : discriminator (u8)
#    1      : nonce (u8)
#    2-9    : open_time (u64)
#    10-17  : init_base_amount (u64)
#    18-25  : init_quote_amount (u64)
POOL_CREATION_LAYOUT = struct.Struct('<BBQQQ')
POOL_CREATION_PAYLOAD_SIZE = POOL_CREATION_LAYOUT.size  # 26
OPEN_TIME_OFFSET = 2
INIT_BASE_AMOUNT_OFFSET = 10
INIT_QUOTE_AMOUNT_OFFSET = 18

# Order-book market account: three 32-byte addresses.
PUBKEY_SIZE = 32
MARKET_EVENT_QUEUE_OFFSET = 245
MARKET_BIDS_OFFSET = 277
MARKET_ASKS_OFFSET = 309
MARKET_ACCOUNT_MIN_SIZE = MARKET_ASKS_OFFSET + PUBKEY_SIZE  # 341

# Swap payload: opcode (u8) + amount (u64).
SWAP_LAYOUT = struct.Struct('<BQ')
SWAP_PAYLOAD_SIZE = SWAP_LAYOUT.size  # 9
MAX_U64 = 2 ** 64 - 1


class PoolCreationParams(NamedTuple):
    discriminator: int
    nonce: int
    open_time: int
    init_base_amount: int
    init_quote_amount: int


class OrderBookExtras(NamedTuple):
    event_queue: str
    bids: str
    asks: str


def decode_pool_creation_payload(data: bytes) -> PoolCreationParams:
    if len(data) < POOL_CREATION_PAYLOAD_SIZE:
        raise MalformedPayload(
            f"Pool creation payload is {len(data)} bytes, expected at least {POOL_CREATION_PAYLOAD_SIZE}"
        )
    return PoolCreationParams(*POOL_CREATION_LAYOUT.unpack_from(data, 0))


def _read_pubkey(data: bytes, offset: int) -> str:
    return str(Pubkey.from_bytes(bytes(data[offset:offset + PUBKEY_SIZE])))


def decode_order_book_extras(data: bytes) -> OrderBookExtras:
    if len(data) < MARKET_ACCOUNT_MIN_SIZE:
        raise MalformedAccount(
            f"Market account is {len(data)} bytes, expected at least {MARKET_ACCOUNT_MIN_SIZE}"
        )
    return OrderBookExtras(
        event_queue=_read_pubkey(data, MARKET_EVENT_QUEUE_OFFSET),
        bids=_read_pubkey(data, MARKET_BIDS_OFFSET),
        asks=_read_pubkey(data, MARKET_ASKS_OFFSET),
    )


def encode_swap_payload(direction: SwapDirection, raw_amount: int) -> bytes:
    if not 0 < raw_amount <= MAX_U64:
        raise InvalidAmount(f"Raw swap amount {raw_amount} is outside the u64 range")
    return SWAP_LAYOUT.pack(int(SwapDirection(direction)), raw_amount)
