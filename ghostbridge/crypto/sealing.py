"""
Order Sealing

Client-side confidentiality for encrypted orders: the order preimage is
sealed to the keeper's X25519 public key and only the ciphertext is stored
with the order record.

Envelope layout (177 bytes for a compressed order):

    [0..32)   ephemeral X25519 public key
    [32..44)  AES-GCM nonce
    [44..)    AES-256-GCM ciphertext of the 117-byte order preimage + 16-byte tag

The key is HKDF-SHA256(shared_secret, info=SEAL_INFO || ephemeral_pub || recipient_pub).
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..constants import MAX_ENCRYPTED_DATA_LEN
from ..engine.commitment import CompressedOrder
from ..exceptions import EncryptedDataTooLongError, InvalidOrderDataError

SEAL_INFO = b"ghostbridge-order-seal-v1"
PUBLIC_KEY_SIZE = 32
NONCE_SIZE = 12


def generate_keypair():
    """Returns (private_key_bytes, public_key_bytes) for a keeper."""
    private_key = X25519PrivateKey.generate()
    return _private_bytes(private_key), _public_bytes(private_key.public_key())


def public_key_from_private(private_key: bytes) -> bytes:
    return _public_bytes(X25519PrivateKey.from_private_bytes(private_key).public_key())


def seal_order(order: CompressedOrder, recipient_public_key: bytes) -> bytes:
    """Encrypt an order preimage so only the holder of the matching private key can read it."""
    if len(recipient_public_key) != PUBLIC_KEY_SIZE:
        raise InvalidOrderDataError("recipient public key must be 32 bytes")

    ephemeral = X25519PrivateKey.generate()
    ephemeral_pub = _public_bytes(ephemeral.public_key())
    shared = ephemeral.exchange(X25519PublicKey.from_public_bytes(recipient_public_key))
    key = _derive_key(shared, ephemeral_pub, recipient_public_key)

    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, order.to_bytes(), ephemeral_pub)
    blob = ephemeral_pub + nonce + ciphertext
    if len(blob) > MAX_ENCRYPTED_DATA_LEN:
        raise EncryptedDataTooLongError(f"{len(blob)} bytes")
    return blob


def open_order(blob: bytes, private_key: bytes) -> CompressedOrder:
    """
    Decrypt a sealed order.

    Raises:
        InvalidOrderDataError: if the envelope is truncated or fails authentication.
    """
    if len(blob) <= PUBLIC_KEY_SIZE + NONCE_SIZE:
        raise InvalidOrderDataError("sealed order envelope is truncated")

    ephemeral_pub = blob[:PUBLIC_KEY_SIZE]
    nonce = blob[PUBLIC_KEY_SIZE:PUBLIC_KEY_SIZE + NONCE_SIZE]
    ciphertext = blob[PUBLIC_KEY_SIZE + NONCE_SIZE:]

    own = X25519PrivateKey.from_private_bytes(private_key)
    shared = own.exchange(X25519PublicKey.from_public_bytes(ephemeral_pub))
    key = _derive_key(shared, ephemeral_pub, _public_bytes(own.public_key()))

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, ephemeral_pub)
    except InvalidTag as e:
        raise InvalidOrderDataError("sealed order failed authentication") from e
    return CompressedOrder.from_bytes(plaintext)


def _derive_key(shared: bytes, ephemeral_pub: bytes, recipient_pub: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=SEAL_INFO + ephemeral_pub + recipient_pub,
    ).derive(shared)


def _public_bytes(key: X25519PublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _private_bytes(key: X25519PrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
