"""
PWLedger - Self-Tests (primitives, accounts, Merkle tree)

Run with: python test_simple.py   (or: pytest)

Covers the building blocks underneath the ledger:
- PBKDF2 password commitments
- AES-CBC secret encryption and malformed ciphertext rejection
- Leaf hashing (field order, empty fields)
- Account activation, set/reveal secret, password binding
- Merkle tree roots, witnesses and slot bounds
"""

import os

from pwledger import crypto
from pwledger.account import Account
from pwledger.errors import AuthenticationError, ValidationError
from pwledger.merkle import MerkleTree, Witness


def test_kdf():
    """Test password commitment derivation."""
    print("Testing KDF (Password Commitment)...")

    identity = crypto.generate_identity()
    assert len(identity) == crypto.IDENTITY_SIZE

    key1 = crypto.derive_key("p1", identity, 16)
    key2 = crypto.derive_key("p1", identity, 16)
    assert key1 == key2, "KDF should be deterministic"
    assert len(key1) == 32, "Key should be 32 bytes"
    assert crypto.commit_password("p1", identity) == key1

    assert crypto.derive_key("p2", identity) != key1, "Different passwords should give different keys"
    other = crypto.generate_identity()
    assert crypto.derive_key("p1", other) != key1, "Identity salts the commitment"

    print("  [OK] KDF works correctly")


def test_encryption():
    """Test AES-CBC encryption/decryption."""
    print("Testing Encryption...")

    key = os.urandom(32)
    iv = crypto.generate_iv()
    plaintext = b"abandon ability able about above absent"

    ciphertext = crypto.encrypt(key, plaintext, iv)
    assert crypto.decrypt(key, ciphertext, iv) == plaintext
    assert crypto.encrypt(key, plaintext, iv) == ciphertext, "Same key + IV should be deterministic"
    assert len(ciphertext) % 16 == 0
    print("  [OK] Encryption/decryption works")

    for bad in (b"", ciphertext[:-1], ciphertext + b"\x00"):
        try:
            crypto.decrypt(key, bad, iv)
            assert False, "Malformed ciphertext length should be rejected"
        except ValidationError:
            pass
    print("  [OK] Malformed ciphertext rejected")

    try:
        crypto.encrypt(key[:16], plaintext, iv)
        assert False, "Short key should be rejected"
    except ValidationError:
        print("  [OK] Key width checked")


def test_leaf_hash():
    """Test leaf hash field order and empty fields."""
    print("Testing Leaf Hash...")

    a, b, c = os.urandom(32), os.urandom(32), os.urandom(32)

    h = crypto.hash_leaf(a, b, c, True)
    assert len(h) == crypto.HASH_SIZE
    assert h == crypto.hash_leaf(a, b, c, True), "Hash should be deterministic"
    assert h != crypto.hash_leaf(b, a, c, True), "Field order matters"
    assert h != crypto.hash_leaf(a, b, c, False), "Activation flag matters"
    assert crypto.hash_leaf(b"", b, b"", False) != crypto.hash_leaf(b"", b, b"\x00", False)
    assert crypto.hash_fields(b"ab", b"") != crypto.hash_fields(b"a", b"b"), "Fields are length-prefixed"
    assert crypto.hash_pair(a, b) != crypto.hash_pair(b, a)

    print("  [OK] Leaf hashing works")


def test_account_create():
    """Test new account defaults and record validation."""
    print("Testing Account Creation...")

    identity = crypto.generate_identity()
    account = Account.create(identity)
    assert not account.is_activated
    assert account.password_commitment == b""
    assert account.encrypted_secret == b""
    assert len(account.iv) == crypto.IV_SIZE
    assert Account.create(identity).iv != account.iv, "Each account gets a fresh IV"
    print("  [OK] New accounts are inactive and empty")

    try:
        Account.create(b"short")
        assert False, "Short identity should be rejected"
    except ValidationError:
        pass

    try:
        Account(identity=identity, iv=account.iv, is_activated=True)
        assert False, "Active account without commitment should be rejected"
    except ValidationError:
        print("  [OK] Malformed records rejected")


def test_activate_once():
    """Test activation happens exactly once."""
    print("Testing Activation...")

    account = Account.create(crypto.generate_identity())
    active = account.activate("p1")

    assert active.is_activated
    assert active.password_commitment == crypto.commit_password("p1", account.identity)
    assert active.iv == account.iv, "IV never changes"
    assert not account.is_activated, "Original record is untouched"
    assert active.hash() != account.hash()
    print("  [OK] Activation works")

    again = active.activate("p2")
    assert again is active, "Second activation is a no-op"
    assert again.password_commitment == active.password_commitment
    print("  [OK] Second activation is a no-op")


def test_secret_round_trip():
    """Test set_secret then reveal_secret."""
    print("Testing Secret Round Trip...")

    account = Account.create(crypto.generate_identity()).activate("p1")
    commitment = crypto.commit_password("p1", account.identity)

    assert account.reveal_secret(commitment, account.hash()) == "", "No secret yet"

    updated = account.set_secret("mnemonic-abc", commitment, account.hash())
    assert updated.encrypted_secret
    assert b"mnemonic-abc" not in updated.encrypted_secret
    assert updated.reveal_secret(commitment, updated.hash()) == "mnemonic-abc"
    print("  [OK] Secret round trip works")

    rotated = updated.set_secret("second words", commitment, updated.hash())
    assert rotated.reveal_secret(commitment, rotated.hash()) == "second words"
    assert rotated.iv == account.iv
    print("  [OK] Secret replacement keeps the IV")


def test_wrong_password():
    """Test wrong password and inactive accounts always fail."""
    print("Testing Wrong Password...")

    inactive = Account.create(crypto.generate_identity())
    account = inactive.activate("p1")
    good = crypto.commit_password("p1", account.identity)
    account = account.set_secret("mnemonic-abc", good, account.hash())
    wrong = crypto.commit_password("wrong", account.identity)

    try:
        account.reveal_secret(wrong, account.hash())
        assert False, "Wrong password should not reveal"
    except AuthenticationError as e:
        assert str(e) == "Authentication failed"

    try:
        account.set_secret("evil", wrong, account.hash())
        assert False, "Wrong password should not set secret"
    except AuthenticationError:
        pass
    print("  [OK] Wrong password rejected")

    for call in (
        lambda: inactive.reveal_secret(good, inactive.hash()),
        lambda: inactive.set_secret("x", good, inactive.hash()),
    ):
        try:
            call()
            assert False, "Inactive account should always fail"
        except AuthenticationError:
            pass
    print("  [OK] Inactive account rejected")


def test_stale_leaf_hash():
    """Test a password proof is bound to the current leaf hash."""
    print("Testing Leaf-Bound Password Proof...")

    account = Account.create(crypto.generate_identity()).activate("p1")
    good = crypto.commit_password("p1", account.identity)
    old_leaf = account.hash()
    updated = account.set_secret("mnemonic-abc", good, old_leaf)

    try:
        updated.reveal_secret(good, old_leaf)
        assert False, "Stale leaf hash should be rejected"
    except AuthenticationError:
        print("  [OK] Stale proof rejected")


def test_secret_length_boundary():
    """Test 128 characters are accepted and 129 rejected."""
    print("Testing Secret Length Boundary...")

    account = Account.create(crypto.generate_identity()).activate("p1")
    good = crypto.commit_password("p1", account.identity)

    updated = account.set_secret("x" * 128, good, account.hash())
    assert updated.reveal_secret(good, updated.hash()) == "x" * 128
    print("  [OK] 128 characters accepted")

    try:
        account.set_secret("x" * 129, good, account.hash())
        assert False, "129 characters should be rejected"
    except ValidationError:
        print("  [OK] 129 characters rejected")

    inactive = Account.create(crypto.generate_identity())
    try:
        inactive.set_secret("x" * 129, good, inactive.hash())
        assert False, "Inactive account should be rejected"
    except AuthenticationError:
        print("  [OK] Inactive account rejected before the length check")


def test_merkle_tree():
    """Test roots and witnesses."""
    print("Testing Merkle Tree...")

    tree = MerkleTree(8)
    assert tree.leaf_count == 256
    assert tree.get_root() == MerkleTree(8).get_root(), "Empty roots are deterministic"
    assert tree.get_root() != MerkleTree(4).get_root()

    accounts = [Account.create(crypto.generate_identity()) for _ in range(4)]
    for slot, account in enumerate(accounts):
        tree.set_leaf(slot, account.hash())
    assert tree.get_leaf(3) == accounts[3].hash()
    assert tree.get_leaf(200) == crypto.ZERO_HASH

    root = tree.get_root()
    for slot, account in enumerate(accounts):
        witness = tree.witness(slot)
        assert witness.depth == 8
        assert witness.calculate_index() == slot
        assert witness.calculate_root(account.hash()) == root
    print("  [OK] Every witness reproduces the root")

    # Same witness, new leaf → new root
    witness = tree.witness(2)
    updated = accounts[2].activate("p3")
    predicted = witness.calculate_root(updated.hash())
    tree.set_leaf(2, updated.hash())
    assert tree.get_root() == predicted
    assert predicted != root
    accounts[2] = updated

    for slot, account in enumerate(accounts):
        assert tree.witness(slot).calculate_root(account.hash()) == predicted
    assert tree.witness(200).calculate_root(crypto.ZERO_HASH) == predicted
    print("  [OK] Witness predicts the root after a leaf update")


def test_merkle_bounds():
    """Test slot, depth and witness validation."""
    print("Testing Merkle Bounds...")

    tree = MerkleTree(2)
    for slot in (-1, 4):
        try:
            tree.witness(slot)
            assert False, "Out-of-range slot should be rejected"
        except ValidationError:
            pass

    for depth in (0, crypto.MAX_TREE_DEPTH + 1):
        try:
            MerkleTree(depth)
            assert False, "Bad depth should be rejected"
        except ValidationError:
            pass

    try:
        tree.set_leaf(0, b"\x00" * 31)
        assert False, "Short leaf hash should be rejected"
    except ValidationError:
        pass

    try:
        Witness(((b"\x00" * 5, True),))
        assert False, "Short sibling should be rejected"
    except ValidationError:
        print("  [OK] Bounds enforced")


def run_all_tests():
    """Run all tests."""
    print("=" * 70)
    print("PWLedger - Primitive Test Suite")
    print("=" * 70)
    print()

    tests = [
        test_kdf,
        test_encryption,
        test_leaf_hash,
        test_account_create,
        test_activate_once,
        test_secret_round_trip,
        test_wrong_password,
        test_stale_leaf_hash,
        test_secret_length_boundary,
        test_merkle_tree,
        test_merkle_bounds,
    ]

    failed = []

    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] TEST FAILED: {e}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    import sys
    success = run_all_tests()
    sys.exit(0 if success else 1)
