"""
PWLedger - Cryptography Module

All hashing and encryption used by the ledger lives here:
- SHA-256 hashing of fields, account records and Merkle nodes
- PBKDF2 password commitment (salted with the account identity)
- AES-256-CBC encryption of the protected secret under a per-account IV
- HMAC-SHA256 chain for the commitment journal

Security Architecture:
    1. Password + identity → PBKDF2 (16 iterations) → password commitment (32 bytes)
    2. The commitment is stored in the record and hashed into its leaf
    3. The same 32 bytes are the AES key for the record's secret
    4. The record's IV is fixed at creation, so a password change means
       re-encryption under a new key, never a new IV

Nothing in this module does I/O or touches ledger state.
"""

import os
import hmac
import hashlib
import json
from typing import Optional

from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import ValidationError


# =============================================================================
# Configuration
# =============================================================================

HASH_SIZE = 32           # SHA-256 output, also the width of every tree node
IDENTITY_SIZE = 32       # raw Ed25519 public key
IV_SIZE = 16             # AES block size
KEY_SIZE = 32            # 256-bit AES key

# PBKDF2 parameters. The iteration count is part of every stored commitment,
# changing it invalidates all activated accounts.
KDF_NAME = "pbkdf2-sha256"
KDF_ITERATIONS = 16

MAX_SECRET_LENGTH = 128  # characters
DEFAULT_TREE_DEPTH = 8
MAX_TREE_DEPTH = 32

ZERO_HASH = bytes(HASH_SIZE)

# Domain tags keep leaf, node and field hashes from colliding
LEAF_TAG = b"\x00"
NODE_TAG = b"\x01"
FIELD_TAG = b"\x02"


# =============================================================================
# Hashing
# =============================================================================

def _encode_fields(parts) -> bytes:
    """Length-prefix each part (4-byte big-endian) and concatenate."""
    out = bytearray()
    for part in parts:
        out += len(part).to_bytes(4, "big")
        out += part
    return bytes(out)


def hash_fields(*parts: bytes) -> bytes:
    """
    Hash an ordered sequence of byte fields.

    Each part is length-prefixed, so an empty field still changes the
    hash and (b"ab", b"") never collides with (b"a", b"b").
    """
    return hashlib.sha256(FIELD_TAG + _encode_fields(parts)).digest()


def hash_leaf(
    password_commitment: bytes,
    identity: bytes,
    encrypted_secret: bytes,
    is_activated: bool
) -> bytes:
    """
    Leaf hash of one account record.

    Field order is fixed: password_commitment, identity, encrypted_secret,
    is_activated. Anything persisting a record must keep these bytes intact.
    """
    body = _encode_fields((password_commitment, identity, encrypted_secret))
    flag = b"\x01" if is_activated else b"\x00"
    return hashlib.sha256(LEAF_TAG + body + flag).digest()


def hash_pair(left: bytes, right: bytes) -> bytes:
    """Hash two tree nodes together (left || right)."""
    return hashlib.sha256(NODE_TAG + left + right).digest()


# =============================================================================
# Key Derivation
# =============================================================================

def derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    """
    Derive a 32-byte key from a password with PBKDF2-HMAC-SHA256.

    Args:
        password: The account password
        salt: The account identity (public, unique per account)
        iterations: PBKDF2 rounds

    Returns:
        32-byte key
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode('utf-8'))


def commit_password(password: str, identity: bytes) -> bytes:
    """Password commitment stored in an account record."""
    return derive_key(password, identity, KDF_ITERATIONS)


# =============================================================================
# Identities
# =============================================================================

def generate_identity() -> bytes:
    """
    New account identity: the raw 32-byte public half of a fresh Ed25519 key.

    The private half is discarded. Key custody belongs to the caller's
    wallet, the ledger only needs a unique public identifier.
    """
    public_key = Ed25519PrivateKey.generate().public_key()
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


# =============================================================================
# Encryption (AES-256-CBC)
# =============================================================================

def generate_iv() -> bytes:
    """Fresh random IV for a new account."""
    return os.urandom(IV_SIZE)


def encrypt(key: bytes, plaintext: bytes, iv: bytes) -> bytes:
    """
    Encrypt with AES-256-CBC and PKCS7 padding.

    Deterministic: the same key, IV and plaintext always give the same
    ciphertext, so a mirror can re-apply an encryption and land on the
    exact leaf hash the ledger committed.
    """
    _check_width(key, KEY_SIZE, "key")
    _check_width(iv, IV_SIZE, "iv")

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt(key: bytes, ciphertext: bytes, iv: bytes) -> bytes:
    """
    Decrypt AES-256-CBC ciphertext.

    Raises:
        ValidationError: ciphertext is empty, not a whole number of blocks,
            or does not unpad cleanly
    """
    _check_width(key, KEY_SIZE, "key")
    _check_width(iv, IV_SIZE, "iv")

    block_bytes = algorithms.AES.block_size // 8
    if not ciphertext or len(ciphertext) % block_bytes:
        raise ValidationError(
            f"Malformed ciphertext: length {len(ciphertext)} is not a positive "
            f"multiple of {block_bytes}"
        )

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError:
        raise ValidationError("Malformed ciphertext: invalid padding") from None


# =============================================================================
# Commitment Journal
# =============================================================================

def canonical_json(data: dict) -> bytes:
    """Canonical JSON bytes: sorted keys, compact, UTF-8."""
    json_str = json.dumps(data, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return json_str.encode('utf-8')


def generate_journal_key() -> bytes:
    """Secret HMAC key for one commitment journal."""
    return os.urandom(KEY_SIZE)


def compute_journal_mac(
    journal_key: bytes,
    seq: int,
    ts: int,
    action: str,
    slot: Optional[int],
    prev_root: bytes,
    new_root: bytes,
    prev_mac: Optional[bytes]
) -> bytes:
    """
    HMAC of one journal entry, chained to the previous entry's MAC.

    Each entry covers the root transition it records and the MAC of the
    entry before it: MAC1 → MAC2 → MAC3 → ... Without journal_key nobody
    can rewrite an entry and recompute the chain after it.

    Returns:
        32-byte HMAC-SHA256
    """
    message = {
        "seq": seq,
        "ts": ts,
        "action": action,
        "slot": slot,
        "prev_root": prev_root.hex(),
        "new_root": new_root.hex(),
        "prev_mac": prev_mac.hex() if prev_mac else "",
    }
    return hmac.new(journal_key, canonical_json(message), hashlib.sha256).digest()


def verify_journal_chain(journal_key: bytes, entries: list) -> bool:
    """
    Verify a commitment journal hasn't been tampered with.

    Args:
        journal_key: Key the journal was written with
        entries: dicts with keys seq, ts, action, slot, prev_root,
            new_root, prev_mac, mac (in order)

    Returns:
        True if every MAC matches, every entry links to the previous MAC,
        and every entry starts from the previous entry's new root
    """
    prev_mac = None
    prev_new_root = None

    for entry in entries:
        if prev_new_root is not None and not constant_compare(entry["prev_root"], prev_new_root):
            return False
        if not constant_compare(entry["prev_mac"] or b"", prev_mac or b""):
            return False

        expected = compute_journal_mac(
            journal_key,
            entry["seq"],
            entry["ts"],
            entry["action"],
            entry["slot"],
            entry["prev_root"],
            entry["new_root"],
            prev_mac
        )
        if not constant_compare(expected, entry["mac"]):
            return False

        prev_mac = entry["mac"]
        prev_new_root = entry["new_root"]

    return True


# =============================================================================
# Helpers
# =============================================================================

def constant_compare(a: bytes, b: bytes) -> bool:
    """Compare two byte strings in constant time."""
    return hmac.compare_digest(a, b)


def _check_width(value: bytes, size: int, name: str) -> None:
    if not isinstance(value, (bytes, bytearray)) or len(value) != size:
        raise ValidationError(f"{name} must be {size} bytes")
