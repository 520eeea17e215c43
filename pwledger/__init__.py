"""
PWLedger - Password-Protected Account Ledger

A tamper-evident ledger of accounts, each holding one password-protected
secret (a mnemonic or key), summarized by a single Merkle root.

Key Features:
- Merkle commitment: one root covers every account record
- Inclusion proofs: every transition proves its account is in the committed set
- Password binding: password proofs are tied to the exact current record
- Optimistic locking: a transition commits only if the root hasn't moved
- Mirror: a local replica that must always reproduce the committed root

Components:
- crypto.py: Hashing, PBKDF2 commitments, AES-CBC secret encryption
- account.py: Account record and its operations
- merkle.py: Fixed-depth Merkle tree and witnesses
- ledger.py: Authoritative commitment and transition protocol
- mirror.py: Local replica kept in lock-step with the ledger
- storage.py: SQLite snapshots of a mirror
- errors.py: Error types

Usage:
    from pwledger.ledger import Ledger
    from pwledger.mirror import Mirror

    ledger = Ledger()
    mirror = Mirror.genesis(ledger, identities, depth=8)
    mirror.activate(0, "p1")
    mirror.set_secret(0, "p1", "mnemonic-abc")
    mirror.reveal_secret(0, "p1")   # "mnemonic-abc"
"""

__version__ = "0.1.0"
__author__ = "PWLedger Team"
