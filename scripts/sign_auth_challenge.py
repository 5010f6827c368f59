# Script to sign a wallet auth challenge with a local Ed25519 key, for exercising the auth flow without a wallet app.
# Usage example:
# python scripts/sign_auth_challenge.py --generate-key wallet_key.pem
# python scripts/sign_auth_challenge.py --key wallet_key.pem --nonce 3f2a...
import sys
import argparse

import base58
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from sleeper_rewards.services.auth import build_auth_message


def wallet_address(private_key: Ed25519PrivateKey) -> str:
    """Base58 address of the key's public half"""
    raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )
    return base58.b58encode(raw).decode('ascii')


def generate_key(path: str) -> str:
    private_key = Ed25519PrivateKey.generate()
    with open(path, 'wb') as key_file:
        key_file.write(private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        ))
    return wallet_address(private_key)


def sign_challenge(key_path: str, nonce: str) -> tuple:
    """Sign the challenge message for ``nonce``, returns (wallet, signature hex)"""
    with open(key_path, 'rb') as key_file:
        private_key = serialization.load_pem_private_key(key_file.read(), password=None)
    if not isinstance(private_key, Ed25519PrivateKey):
        raise ValueError("key is not an Ed25519 private key")

    wallet = wallet_address(private_key)
    message = build_auth_message(wallet, nonce)
    return wallet, private_key.sign(message.encode('utf-8')).hex()


def main():
    parser = argparse.ArgumentParser(description='Sign a Sleeper auth challenge with a local Ed25519 key')
    parser.add_argument('--generate-key', metavar='PATH', help='Write a new PEM private key and print its wallet')
    parser.add_argument('--key', help='Path to PEM private key file', default='wallet_key.pem')
    parser.add_argument('--nonce', help='Challenge nonce returned by the server')

    args = parser.parse_args()

    try:
        if args.generate_key:
            print(f"\nWallet address:\n{generate_key(args.generate_key)}\n")
            return
        if not args.nonce:
            parser.error('--nonce is required unless --generate-key is given')

        wallet, signature = sign_challenge(args.key, args.nonce)
        print(f"\nWallet: {wallet}\nSignature (hex):\n{signature}\n")
    except Exception as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
