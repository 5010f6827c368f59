"""Tests for the wallet challenge/response flow and token checks"""
from datetime import timedelta

import pytest

from sleeper_rewards.errors import AuthenticationError, ValidationError
from sleeper_rewards.services.auth import build_auth_message, verify_signature_hex
from sleeper_rewards.wallet import is_valid_wallet_address, public_key_bytes

from tests.conftest import NOW


def sign(private_key, message: str) -> str:
    return private_key.sign(message.encode('utf-8')).hex()


class TestWalletFormat:

    def test_generated_wallet_is_valid(self, wallet):
        assert is_valid_wallet_address(wallet)
        assert len(public_key_bytes(wallet)) == 32

    @pytest.mark.parametrize("address", [
        None,
        '',
        'short',
        '0' * 44,                  # '0' is not in the base58 alphabet
        '1' * 44,                  # decodes to the wrong length
        '3yZe7d' * 9,              # too long
    ])
    def test_rejected_addresses(self, address):
        assert not is_valid_wallet_address(address)


class TestSignature:

    def test_message_layout(self, wallet):
        message = build_auth_message(wallet, 'abc123')
        assert message.split('\n') == [
            'Sleeper Authentication',
            f'Wallet: {wallet}',
            'Nonce: abc123',
            'Purpose: authorize backend mining sync',
        ]

    def test_valid_signature(self, keypair):
        wallet, private_key = keypair()
        message = build_auth_message(wallet, 'n1')
        assert verify_signature_hex(wallet, message, sign(private_key, message))

    def test_signature_by_other_key(self, keypair):
        wallet, _ = keypair()
        _, other_key = keypair()
        message = build_auth_message(wallet, 'n1')
        assert not verify_signature_hex(wallet, message, sign(other_key, message))

    @pytest.mark.parametrize("signature", ['', 'zz' * 64, 'ab' * 63])
    def test_malformed_signature(self, wallet, signature):
        assert not verify_signature_hex(wallet, build_auth_message(wallet, 'n1'), signature)


class TestChallengeFlow:

    def test_issue_and_check_token(self, auth, keypair):
        wallet, private_key = keypair()
        challenge = auth.create_challenge(wallet, now=NOW)
        assert challenge.expires_at == NOW + timedelta(seconds=300)

        issued = auth.verify_challenge(wallet, challenge.nonce, sign(private_key, challenge.message), now=NOW)
        assert issued.wallet_address == wallet
        assert len(issued.token) == 64

        auth.check_token(wallet, issued.token, now=NOW + timedelta(days=1))

    def test_nonce_single_use(self, auth, keypair):
        wallet, private_key = keypair()
        challenge = auth.create_challenge(wallet, now=NOW)
        signature = sign(private_key, challenge.message)
        auth.verify_challenge(wallet, challenge.nonce, signature, now=NOW)

        with pytest.raises(AuthenticationError, match="invalid or used nonce"):
            auth.verify_challenge(wallet, challenge.nonce, signature, now=NOW)

    def test_expired_nonce(self, auth, keypair):
        wallet, private_key = keypair()
        challenge = auth.create_challenge(wallet, now=NOW)
        with pytest.raises(AuthenticationError, match="expired"):
            auth.verify_challenge(
                wallet, challenge.nonce, sign(private_key, challenge.message), now=NOW + timedelta(minutes=6)
            )

    def test_bad_signature_keeps_nonce_usable(self, auth, keypair):
        wallet, private_key = keypair()
        challenge = auth.create_challenge(wallet, now=NOW)
        with pytest.raises(AuthenticationError, match="invalid signature"):
            auth.verify_challenge(wallet, challenge.nonce, 'ab' * 64, now=NOW)

        issued = auth.verify_challenge(wallet, challenge.nonce, sign(private_key, challenge.message), now=NOW)
        assert issued.token

    def test_nonce_bound_to_wallet(self, auth, keypair):
        wallet, private_key = keypair()
        other, _ = keypair()
        challenge = auth.create_challenge(wallet, now=NOW)
        with pytest.raises(AuthenticationError):
            auth.verify_challenge(other, challenge.nonce, sign(private_key, challenge.message), now=NOW)

    def test_invalid_wallet(self, auth):
        with pytest.raises(ValidationError):
            auth.create_challenge('nope', now=NOW)


class TestTokenCheck:

    @pytest.fixture
    def issued(self, auth, keypair):
        wallet, private_key = keypair()
        challenge = auth.create_challenge(wallet, now=NOW)
        return auth.verify_challenge(wallet, challenge.nonce, sign(private_key, challenge.message), now=NOW)

    def test_missing_token(self, auth, wallet):
        with pytest.raises(AuthenticationError, match="required"):
            auth.check_token(wallet, None, now=NOW)

    def test_expired_token(self, auth, issued):
        with pytest.raises(AuthenticationError):
            auth.check_token(issued.wallet_address, issued.token, now=issued.expires_at)

    def test_revoked_token(self, auth, issued):
        assert auth.revoke_token(issued.token, now=NOW)
        assert not auth.revoke_token(issued.token, now=NOW)
        with pytest.raises(AuthenticationError):
            auth.check_token(issued.wallet_address, issued.token, now=NOW)

    def test_revoke_unknown_token(self, auth):
        assert not auth.revoke_token('0' * 64)
