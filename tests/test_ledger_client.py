import asyncio
from types import SimpleNamespace

import pytest

import ledger_client
from conftest import key
from errors import LedgerError
from ledger_client import LedgerClient


class FakeSocket:
    """Confirms the subscription, delivers the given lamport updates, then loses the connection."""

    def __init__(self, updates):
        self.updates = updates

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def account_subscribe(self, address, commitment=None, encoding=None):
        self.address = address

    async def recv(self):
        return [SimpleNamespace(result=1)]

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for lamports in self.updates:
            value = SimpleNamespace(data=b'', lamports=lamports)
            yield [SimpleNamespace(result=SimpleNamespace(value=value))]
        raise OSError("connection reset by peer")


def refuse(url):
    raise ConnectionRefusedError(111, "Connect call failed")


@pytest.fixture
def ledger():
    return LedgerClient("http://127.0.0.1:1", "ws://127.0.0.1:1")


def test_subscription_that_cannot_connect_raises(ledger, monkeypatch):
    monkeypatch.setattr(ledger_client, 'connect', refuse)

    async def scenario():
        try:
            with pytest.raises(LedgerError):
                await ledger.on_account_change(key(7), lambda account: None)
        finally:
            await ledger.close()

    asyncio.run(scenario())
    assert ledger._subscriptions == {}


def test_lost_stream_is_reported(ledger, monkeypatch):
    monkeypatch.setattr(ledger_client, 'connect', lambda url: FakeSocket([2_000_000_000]))
    received, errors = [], []

    async def scenario():
        lost = asyncio.Event()

        async def on_change(account):
            received.append(account.lamports)

        def on_error(error):
            errors.append(error)
            lost.set()

        try:
            assert await ledger.on_account_change(key(7), on_change, on_error=on_error) == 1
            await asyncio.wait_for(lost.wait(), timeout=5)
        finally:
            await ledger.close()

    asyncio.run(scenario())
    assert received == [2_000_000_000]
    assert len(errors) == 1
    assert isinstance(errors[0], LedgerError)
    assert isinstance(errors[0].__cause__, OSError)
    assert ledger._subscriptions == {}


class QuietSocket(FakeSocket):
    async def _messages(self):
        await asyncio.Event().wait()
        yield []


def test_removed_subscription_is_not_reported(ledger, monkeypatch):
    monkeypatch.setattr(ledger_client, 'connect', lambda url: QuietSocket([]))
    errors = []

    async def scenario():
        try:
            subscription_id = await ledger.on_account_change(key(7), None, on_error=errors.append)
            await ledger.remove_account_change_listener(subscription_id)
            await asyncio.sleep(0)
        finally:
            await ledger.close()

    asyncio.run(scenario())
    assert errors == []
    assert ledger._subscriptions == {}
