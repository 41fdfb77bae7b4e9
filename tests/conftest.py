"""Shared fixtures and in-memory collaborators for sniper tests."""

import struct
from decimal import Decimal

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from db_manager import PoolStore
from errors import LedgerError
from models import WSOL_MINT, AccountInfo, PoolRecord, RawInstruction, RawTransaction

AMM_PROGRAM_ID = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
TOKEN_MINT = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


def key(n: int) -> str:
    """Deterministic address for slot n."""
    return str(Pubkey.from_bytes(bytes([n]) * 32))


def pool_creation_payload(nonce=254, open_time=1_700_000_000,
                          base_amount=500_000_000, quote_amount=1_000_000_000) -> bytes:
    return struct.pack('<BBQQQ', 1, nonce, open_time, base_amount, quote_amount)


def market_account_data(event_queue: str, bids: str, asks: str, size: int = 388) -> bytes:
    data = bytearray(size)
    data[245:277] = bytes(Pubkey.from_string(event_queue))
    data[277:309] = bytes(Pubkey.from_string(bids))
    data[309:341] = bytes(Pubkey.from_string(asks))
    return bytes(data)


def pool_creation_tx(coin_mint=TOKEN_MINT, pc_mint=WSOL_MINT, data=None, account_count=21,
                     signature="sig-initialize2") -> RawTransaction:
    """Transaction whose account keys are key(0)..key(20) plus the program.

    Instruction account position i points at account key i, with the coin and
    pc mints placed at positions 8 and 9.
    """
    account_keys = [key(i + 1) for i in range(21)]
    account_keys[8] = coin_mint
    account_keys[9] = pc_mint
    account_keys.append(AMM_PROGRAM_ID)
    program_index = len(account_keys) - 1
    instructions = [
        RawInstruction(program_id_index=program_index, accounts=list(range(account_count)),
                       data=pool_creation_payload() if data is None else data),
    ]
    return RawTransaction(signature=signature, account_keys=account_keys, instructions=instructions)


@pytest.fixture
def sample_record() -> PoolRecord:
    return PoolRecord(
        program_id=AMM_PROGRAM_ID,
        amm_id=key(101),
        amm_authority=key(102),
        amm_open_orders=key(103),
        lp_mint=key(104),
        token_address=TOKEN_MINT,
        sol_address=WSOL_MINT,
        token_vault=key(105),
        sol_vault=key(106),
        amm_target_orders=key(107),
        deployer=key(108),
        market_program_id=key(109),
        market_id=key(110),
        market_base_vault=key(111),
        market_quote_vault=key(112),
        market_authority=key(113),
        open_time=1_700_000_000,
        nonce=254,
        init_base_amount=500_000_000,
        init_quote_amount=1_000_000_000,
        k=500_000_000_000_000_000,
        v=Decimal('0.5'),
        is_wsol_swap=True,
        market_bids=key(114),
        market_asks=key(115),
        market_event_queue=key(116),
        record_id='1',
    )


class FakeLedger:
    """In-memory stand-in for LedgerClient."""

    def __init__(self):
        self.accounts = {}
        self.transactions = {}
        self.balances = {}
        self.token_balances = {}
        self.subscriptions = {}
        self.error_handlers = {}
        self.removed = []
        self.account_reads = 0
        self._next_subscription = 1

    async def get_account_info(self, address):
        self.account_reads += 1
        value = self.accounts.get(str(address))
        if isinstance(value, Exception):
            raise value
        return value

    async def get_balance(self, address):
        return self.balances.get(str(address), 0)

    async def get_token_balance(self, address):
        return self.token_balances.get(str(address), (0, 9))

    async def get_transaction(self, signature):
        return self.transactions.get(signature)

    async def on_account_change(self, address, callback, on_error=None):
        subscription_id = self._next_subscription
        self._next_subscription += 1
        self.subscriptions[subscription_id] = (str(address), callback)
        self.error_handlers[subscription_id] = on_error
        return subscription_id

    async def remove_account_change_listener(self, subscription_id):
        self.removed.append(subscription_id)
        self.subscriptions.pop(subscription_id, None)
        self.error_handlers.pop(subscription_id, None)

    async def push(self, lamports):
        """Deliver an account change to every active subscription."""
        for _, callback in list(self.subscriptions.values()):
            await callback(AccountInfo(data=b'', lamports=lamports))

    def drop(self, error):
        """Lose every active subscription, as a closed websocket would."""
        for subscription_id in list(self.subscriptions):
            del self.subscriptions[subscription_id]
            on_error = self.error_handlers.pop(subscription_id, None)
            if on_error is not None:
                on_error(error)

    def set_vault_lamports(self, address, lamports):
        self.accounts[str(address)] = AccountInfo(data=b'', lamports=lamports)

    def fail_reads(self, address, message="rpc down"):
        self.accounts[str(address)] = LedgerError(message)


class FakeExecutor:
    """Records swaps instead of submitting them."""

    def __init__(self):
        self.owner = Keypair().pubkey()
        self.calls = []
        self.errors = []
        self.gate = None  # optional asyncio.Event a swap waits on

    async def swap(self, record, direction, amount, source=None, destination=None, decimals=None):
        self.calls.append((direction, Decimal(str(amount)), decimals))
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        return f"sig-{len(self.calls)}"


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def store(tmp_path):
    pool_store = PoolStore(str(tmp_path / "pools.sqlite"))
    yield pool_store
    pool_store.close()
