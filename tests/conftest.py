"""Shared fixtures: in-memory database, settings and wallets"""
from datetime import datetime, timezone

import base58
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from sleeper_rewards.config import Settings
from sleeper_rewards.db import Database
from sleeper_rewards.services.auth import AuthService
from sleeper_rewards.services.ledger import SessionLedger
from sleeper_rewards.services.participants import ParticipantService

# Fixed server clock: evening of 2026-03-01 UTC
NOW = datetime(2026, 3, 1, 23, 30)
NIGHT_START_MS = int(datetime(2026, 3, 1, 22, 0, tzinfo=timezone.utc).timestamp() * 1000)
EIGHT_HOURS_MS = 8 * 3600 * 1000


def wallet_for(private_key: Ed25519PrivateKey) -> str:
    raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )
    return base58.b58encode(raw).decode('ascii')


@pytest.fixture
def keypair():
    """Factory returning (wallet address, private key)"""
    def _make():
        private_key = Ed25519PrivateKey.generate()
        return wallet_for(private_key), private_key
    return _make


@pytest.fixture
def wallet(keypair):
    return keypair()[0]


@pytest.fixture
def make_wallet(keypair):
    return lambda: keypair()[0]


@pytest.fixture
def settings():
    """Settings with session auth off; auth tests switch it back on"""
    return Settings(REQUIRE_SESSION_AUTH=False, DISTRIBUTION_WEBHOOK_URL=None, _env_file=None)


@pytest.fixture
def database():
    database = Database()
    database.init('sqlite://')
    yield database
    database.dispose()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def participants(database, settings):
    return ParticipantService(database, settings)


@pytest.fixture
def auth(database, settings):
    return AuthService(database, settings)


@pytest.fixture
def ledger(database, settings, clock):
    return SessionLedger(database, settings, clock=clock)


@pytest.fixture
def report_payload():
    """Factory for an eight-hour session report at minimum storage"""
    def _make(wallet_address, **overrides):
        payload = {
            'wallet': wallet_address,
            'uptime_minutes': 480,
            'storage_mb': 100,
            'staked_skr_human': 0,
            'human_checks_passed': 5,
            'human_checks_failed': 0,
            'daily_social_bonus_percent': 0.0,
            'points_per_second': 0,
            'session_started_at': NIGHT_START_MS,
            'session_ended_at': NIGHT_START_MS + EIGHT_HOURS_MS,
        }
        payload.update(overrides)
        return payload
    return _make
