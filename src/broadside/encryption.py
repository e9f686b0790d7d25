# AEAD transport encryption for frame payloads

import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.exceptions import InvalidTag

NONCE_LEN = 12
TAG_LEN = 16
# Bytes added to a payload by seal()
OVERHEAD = NONCE_LEN + TAG_LEN


def check_key(key: bytes) -> bytes:
    """Return *key* if it is a valid AES key length, else raise ValueError"""
    if len(key) not in (16, 24, 32):
        raise ValueError("AES key must be 16/24/32 bytes")
    return key


def sealed_length(plain_len: int) -> int:
    return plain_len + OVERHEAD


def seal(key: bytes, payload: bytes, associated: bytes) -> bytes:
    """AES-GCM encrypt *payload*; *associated* (the frame header) is authenticated, not encrypted"""
    nonce = os.urandom(NONCE_LEN)
    return nonce + AESGCM(key).encrypt(nonce, payload, associated)


def open_sealed(key: bytes, sealed: bytes, associated: bytes) -> bytes:
    """Inverse of seal(); raises InvalidTag on a wrong key or tampered frame"""
    if len(sealed) < OVERHEAD:
        raise InvalidTag()
    nonce, ciphertext = sealed[:NONCE_LEN], sealed[NONCE_LEN:]
    return AESGCM(key).decrypt(nonce, ciphertext, associated)
