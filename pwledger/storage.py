"""
PWLedger - Mirror Snapshots

Saves a mirror to SQLite and loads it back.

Database structure:
- ledger_state: tree depth, KDF parameters and the root at save time
- accounts: one row per slot, raw record bytes

A loaded snapshot is only accepted if its rebuilt root equals both the
saved root and the ledger's current commitment, so an edited row
cannot slip back into a mirror.
"""

import sqlite3
import json
import logging
import time
from typing import Optional

from . import crypto
from .account import Account
from .errors import ConsistencyFault, ValidationError
from .ledger import Ledger
from .merkle import MerkleTree
from .mirror import Mirror

logger = logging.getLogger(__name__)


# =============================================================================
# DATABASE SCHEMA
# =============================================================================

SCHEMA_VERSION = 1

SCHEMA = """
-- Snapshot state - one row
CREATE TABLE IF NOT EXISTS ledger_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    schema_version INTEGER NOT NULL DEFAULT 1,
    tree_depth INTEGER NOT NULL,
    kdf TEXT NOT NULL,                -- "pbkdf2-sha256"
    kdf_params TEXT NOT NULL,         -- JSON: {"iterations": 16, "dkLen": 32}
    root BLOB NOT NULL,               -- mirror root when saved
    saved_at INTEGER NOT NULL
);

-- Account records, columns in leaf hash order (iv last, not hashed)
CREATE TABLE IF NOT EXISTS accounts (
    slot INTEGER PRIMARY KEY,
    password_commitment BLOB NOT NULL,
    identity BLOB NOT NULL UNIQUE,
    encrypted_secret BLOB NOT NULL,
    is_activated INTEGER NOT NULL CHECK (is_activated IN (0, 1)),
    iv BLOB NOT NULL
);
"""

PRAGMAS = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=FULL;
PRAGMA secure_delete=ON;
"""


def kdf_params() -> dict:
    """KDF parameters every stored commitment was derived with."""
    return {"iterations": crypto.KDF_ITERATIONS, "dkLen": crypto.KEY_SIZE}


class MirrorStore:
    """
    SQLite snapshot of a mirror.

    Usage:
        store = MirrorStore("ledger.db")
        store.save(mirror)

        # Later, against the same ledger
        mirror = MirrorStore("ledger.db").load(ledger)
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None

    def open(self) -> None:
        """Connect and create tables if needed."""
        if self.conn:
            return
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(PRAGMAS)
        self.conn.executescript(SCHEMA)

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "MirrorStore":
        self.open()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def save(self, mirror: Mirror) -> None:
        """
        Replace the snapshot with the mirror's current state.

        The mirror must be in sync with its ledger; a diverged mirror is
        never written.
        """
        mirror.check_sync()
        self.open()

        with self.conn:
            self.conn.execute("DELETE FROM accounts")
            self.conn.executemany(
                """INSERT INTO accounts
                   (slot, password_commitment, identity, encrypted_secret, is_activated, iv)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (slot, account.password_commitment, account.identity,
                     account.encrypted_secret, int(account.is_activated), account.iv)
                    for slot, account in mirror.accounts()
                ]
            )
            self.conn.execute(
                """INSERT OR REPLACE INTO ledger_state
                   (id, schema_version, tree_depth, kdf, kdf_params, root, saved_at)
                   VALUES (1, ?, ?, ?, ?, ?, ?)""",
                (SCHEMA_VERSION, mirror.depth, crypto.KDF_NAME,
                 json.dumps(kdf_params()), mirror.root, int(time.time()))
            )

        logger.info("Saved %d accounts to %s", len(mirror), self.db_path)

    def load(self, ledger: Ledger) -> Mirror:
        """
        Load the snapshot as a mirror of ledger.

        Raises:
            ValidationError: no snapshot, unsupported schema or KDF, or malformed row
            ConsistencyFault: rows do not hash to the saved root, or the
                saved state is not the ledger's current commitment
        """
        self.open()

        state = self.conn.execute("SELECT * FROM ledger_state WHERE id = 1").fetchone()
        if not state:
            raise ValidationError("Snapshot not initialized")
        if state['schema_version'] != SCHEMA_VERSION:
            raise ValidationError(
                f"Snapshot schema version {state['schema_version']}, expected {SCHEMA_VERSION}"
            )
        if state['kdf'] != crypto.KDF_NAME or json.loads(state['kdf_params']) != kdf_params():
            raise ValidationError(
                f"Snapshot uses {state['kdf']} {state['kdf_params']}, "
                f"expected {crypto.KDF_NAME} {json.dumps(kdf_params())}"
            )

        depth = state['tree_depth']
        rows = self.conn.execute("SELECT * FROM accounts ORDER BY slot").fetchall()

        accounts = {}
        tree = MerkleTree(depth)
        for row in rows:
            account = Account(
                identity=row['identity'],
                iv=row['iv'],
                encrypted_secret=row['encrypted_secret'],
                password_commitment=row['password_commitment'],
                is_activated=bool(row['is_activated']),
            )
            accounts[row['slot']] = account
            tree.set_leaf(row['slot'], account.hash())

        if not crypto.constant_compare(tree.get_root(), state['root']):
            logger.error("Snapshot %s does not hash to its saved root", self.db_path)
            raise ConsistencyFault("Snapshot rows do not match the saved root")

        mirror = Mirror.restore(ledger, accounts, depth)
        logger.info("Loaded %d accounts from %s", len(mirror), self.db_path)
        return mirror
