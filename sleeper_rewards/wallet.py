"""Wallet address helpers"""
from typing import Optional

import base58

MIN_ADDRESS_LENGTH = 32
MAX_ADDRESS_LENGTH = 44
PUBLIC_KEY_LENGTH = 32


def public_key_bytes(address: Optional[str]) -> Optional[bytes]:
    """Decode a base58 wallet address into its 32-byte Ed25519 public key"""
    if not address:
        return None
    address = address.strip()
    if not MIN_ADDRESS_LENGTH <= len(address) <= MAX_ADDRESS_LENGTH:
        return None
    try:
        raw = base58.b58decode(address)
    except ValueError:
        return None
    if len(raw) != PUBLIC_KEY_LENGTH:
        return None
    # Reject non-canonical encodings such as extra leading '1's
    if base58.b58encode(raw).decode('ascii') != address:
        return None
    return raw


def is_valid_wallet_address(address: Optional[str]) -> bool:
    return public_key_bytes(address) is not None


def short_wallet(address: str) -> str:
    """Wallet prefix for log lines"""
    return f"{address[:8]}…"
