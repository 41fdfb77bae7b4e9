from decimal import Decimal

import pytest
from solders.keypair import Keypair

from config import SniperConfig, load_payer_keypair
from errors import ConfigurationError


def test_trading_defaults():
    config = SniperConfig(buy_amount=Decimal('0.05'), sell_target_percentage=Decimal('10'))
    assert config.buy_amount == Decimal('0.05')
    assert config.watch_mode in ('poll', 'subscribe')


def test_rejects_unknown_watch_mode():
    with pytest.raises(ConfigurationError):
        SniperConfig(watch_mode='stream')


def test_rejects_non_positive_poll_interval():
    with pytest.raises(ConfigurationError):
        SniperConfig(poll_interval=0)


def test_loads_base58_keypair():
    keypair = Keypair()
    assert load_payer_keypair(str(keypair)).pubkey() == keypair.pubkey()


def test_missing_wallet_key(monkeypatch):
    monkeypatch.delenv('WALLET_PRIVATE_KEY', raising=False)
    with pytest.raises(ConfigurationError):
        load_payer_keypair()
