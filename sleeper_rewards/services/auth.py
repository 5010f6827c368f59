"""Wallet challenge/response authentication and auth token checks"""
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from sleeper_rewards.config import Settings, settings as default_settings
from sleeper_rewards.db import Database
from sleeper_rewards.errors import AuthenticationError, PersistenceError, ValidationError
from sleeper_rewards.models.db import AuthChallenge, WalletAuthToken, utcnow
from sleeper_rewards.wallet import public_key_bytes, short_wallet

logger = logging.getLogger(__name__)

SIGNATURE_HEX = re.compile(r'^[0-9a-fA-F]{128}$')


def build_auth_message(wallet_address: str, nonce: str) -> str:
    """Exact text the wallet signs"""
    return '\n'.join([
        'Sleeper Authentication',
        f'Wallet: {wallet_address}',
        f'Nonce: {nonce}',
        'Purpose: authorize backend mining sync',
    ])


def verify_signature_hex(wallet_address: str, message: str, signature_hex: str) -> bool:
    """Check an Ed25519 signature made by the wallet's key"""
    if not signature_hex or not SIGNATURE_HEX.match(signature_hex):
        return False
    key_bytes = public_key_bytes(wallet_address)
    if key_bytes is None:
        return False
    try:
        public_key = Ed25519PublicKey.from_public_bytes(key_bytes)
        public_key.verify(bytes.fromhex(signature_hex), message.encode('utf-8'))
        return True
    except (InvalidSignature, ValueError):
        return False


@dataclass
class Challenge:
    nonce: str
    message: str
    expires_at: datetime


@dataclass
class IssuedToken:
    token: str
    wallet_address: str
    expires_at: datetime


class AuthService:
    """Issues and checks wallet auth tokens"""

    def __init__(self, database: Database, config: Settings = default_settings):
        self.db = database
        self.config = config

    def create_challenge(self, wallet_address: str, now: Optional[datetime] = None) -> Challenge:
        """Create a fresh nonce for the wallet to sign"""
        if public_key_bytes(wallet_address) is None:
            raise ValidationError("invalid wallet format")

        now = now or utcnow()
        nonce = secrets.token_hex(16)
        challenge = Challenge(
            nonce=nonce,
            message=build_auth_message(wallet_address, nonce),
            expires_at=now + timedelta(seconds=self.config.AUTH_CHALLENGE_TTL_SECONDS)
        )

        try:
            with self.db.session() as session:
                # Drop stale challenges so the table stays small
                session.query(AuthChallenge).filter(
                    AuthChallenge.wallet_address == wallet_address,
                    (AuthChallenge.used_at.isnot(None)) | (AuthChallenge.expires_at <= now)
                ).delete(synchronize_session=False)
                session.add(AuthChallenge(
                    nonce=challenge.nonce,
                    wallet_address=wallet_address,
                    message=challenge.message,
                    expires_at=challenge.expires_at
                ))
        except SQLAlchemyError as e:
            logger.error(f"Database error creating auth challenge: {e}")
            raise PersistenceError("Failed to create auth challenge") from e

        return challenge

    def verify_challenge(self, wallet_address: str, nonce: str, signature_hex: str,
                         now: Optional[datetime] = None) -> IssuedToken:
        """
        Exchange a signed challenge for an auth token.

        Raises:
            AuthenticationError: Unknown, used or expired nonce, or a bad signature
        """
        if public_key_bytes(wallet_address) is None:
            raise ValidationError("invalid wallet format")

        now = now or utcnow()
        try:
            with self.db.session() as session:
                challenge = session.query(AuthChallenge).filter_by(
                    nonce=nonce, wallet_address=wallet_address
                ).with_for_update().first()

                if challenge is None or challenge.used_at is not None:
                    raise AuthenticationError("invalid or used nonce")
                if challenge.expires_at <= now:
                    raise AuthenticationError("nonce expired")
                if not verify_signature_hex(wallet_address, challenge.message, signature_hex):
                    raise AuthenticationError("invalid signature")

                challenge.used_at = now
                issued = IssuedToken(
                    token=secrets.token_hex(32),
                    wallet_address=wallet_address,
                    expires_at=now + timedelta(seconds=self.config.AUTH_TOKEN_TTL_SECONDS)
                )
                session.add(WalletAuthToken(
                    token=issued.token,
                    wallet_address=wallet_address,
                    expires_at=issued.expires_at
                ))
        except SQLAlchemyError as e:
            logger.error(f"Database error verifying auth challenge: {e}")
            raise PersistenceError("Failed to verify auth challenge") from e

        logger.info(f"Auth token issued for {short_wallet(wallet_address)}")
        return issued

    @staticmethod
    def validate_token(session: Session, wallet_address: str, token: Optional[str], now: datetime) -> None:
        """
        Check a token inside the caller's transaction.

        Raises:
            AuthenticationError: Token missing, unknown, revoked, expired or issued to another wallet
        """
        if not token:
            raise AuthenticationError("auth_token is required")

        row = session.query(WalletAuthToken).filter(
            WalletAuthToken.token == token,
            WalletAuthToken.wallet_address == wallet_address,
            WalletAuthToken.revoked_at.is_(None),
            WalletAuthToken.expires_at > now
        ).first()
        if row is None:
            raise AuthenticationError("invalid or expired auth_token")

    def check_token(self, wallet_address: str, token: Optional[str], now: Optional[datetime] = None) -> None:
        """Standalone token check in its own read-only transaction"""
        if not token:
            raise AuthenticationError("auth_token is required")
        try:
            with self.db.session() as session:
                self.validate_token(session, wallet_address, token, now or utcnow())
        except SQLAlchemyError as e:
            logger.error(f"Database error checking auth token: {e}")
            raise PersistenceError("Failed to check auth token") from e

    def revoke_token(self, token: str, now: Optional[datetime] = None) -> bool:
        """Revoke a token; False when it does not exist or was already revoked"""
        try:
            with self.db.session() as session:
                row = session.query(WalletAuthToken).filter_by(token=token).first()
                if row is None or row.revoked_at is not None:
                    return False
                row.revoked_at = now or utcnow()
                return True
        except SQLAlchemyError as e:
            logger.error(f"Database error revoking auth token: {e}")
            raise PersistenceError("Failed to revoke auth token") from e
