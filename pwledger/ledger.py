"""
PWLedger - Authoritative Ledger

This file handles:
- The authoritative commitment (one Merkle root, optimistic locking)
- The commitment journal (HMAC-chained history of every root change)
- The transitions: activate, set_secret, reveal_secret, update_commitment

Every transition has the same shape:
    1. The caller's root must equal the current commitment (else ConcurrencyError)
    2. The caller's witness must reproduce that root from the account hash
       (else AuthenticationError)
    3. The account is replaced by its mutated value
    4. The same witness computes the new root, committed only if the
       commitment is still the root read in step 1

Nothing is retried here. A caller that loses a race refetches the root,
rebuilds its witness and resubmits.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import List, Dict, Optional

from . import crypto
from .account import Account
from .errors import AuthenticationError, ConcurrencyError, LedgerError, ValidationError
from .merkle import Witness

logger = logging.getLogger(__name__)


# =============================================================================
# COMMITMENT STORE
# =============================================================================

class CommitmentStore:
    """
    Single authoritative root with compare-and-set updates.

    Starts at ZERO_HASH before any accounts are committed. The root read
    by a caller is its lock: an update names the root it expects to
    replace and fails if anything else was committed in between.

    Every committed change is appended to an HMAC-chained journal. The
    journal key never leaves the store, so the chain cannot be rewritten
    and re-MACed by whoever can edit the entries.
    """

    def __init__(self, journal_key: Optional[bytes] = None):
        self._root = crypto.ZERO_HASH
        self._lock = threading.Lock()
        self._journal_key = journal_key or crypto.generate_journal_key()
        self.journal: List[Dict] = []

    def get_commitment(self) -> bytes:
        """Current authoritative root."""
        return self._root

    def update_commitment(
        self,
        new_root: bytes,
        expected_root: bytes,
        action: str = "UPDATE_COMMITMENT",
        slot: Optional[int] = None
    ) -> bytes:
        """
        Replace the root if it still equals expected_root.

        Args:
            new_root: Root to commit
            expected_root: Root the caller read before building its update
            action: Journal label for this change
            slot: Account slot the change touched, if any

        Returns:
            The committed root

        Raises:
            ValidationError: a root is not HASH_SIZE bytes
            ConcurrencyError: the commitment moved since expected_root was read
        """
        for value in (new_root, expected_root):
            if not isinstance(value, bytes) or len(value) != crypto.HASH_SIZE:
                raise ValidationError(f"roots must be {crypto.HASH_SIZE} bytes")

        with self._lock:
            current = self._root
            if not crypto.constant_compare(current, expected_root):
                raise ConcurrencyError("Stale root: the commitment changed since it was read")
            self._root = new_root
            self._append_journal(action, slot, current, new_root)

        logger.info("Committed %s slot=%s root=%s", action, slot, new_root.hex()[:16])
        return new_root

    def verify_journal(self) -> bool:
        """
        Verify the journal hasn't been tampered with.

        Returns:
            True if the MAC chain is intact and ends at the current root
        """
        if not crypto.verify_journal_chain(self._journal_key, self.journal):
            return False
        if self.journal:
            return crypto.constant_compare(self.journal[-1]["new_root"], self._root)
        return crypto.constant_compare(self._root, crypto.ZERO_HASH)

    def _append_journal(
        self,
        action: str,
        slot: Optional[int],
        prev_root: bytes,
        new_root: bytes
    ) -> None:
        """Append one root change to the journal. Caller holds the lock."""
        if self.journal:
            prev_mac = self.journal[-1]["mac"]
            seq = self.journal[-1]["seq"] + 1
        else:
            prev_mac = None
            seq = 1

        ts = int(time.time())
        mac = crypto.compute_journal_mac(
            self._journal_key, seq, ts, action, slot, prev_root, new_root, prev_mac
        )
        self.journal.append({
            "seq": seq,
            "ts": ts,
            "action": action,
            "slot": slot,
            "prev_root": prev_root,
            "new_root": new_root,
            "prev_mac": prev_mac,
            "mac": mac,
        })


# =============================================================================
# TRANSITIONS
# =============================================================================

@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a committed transition."""
    account: Account
    commitment: bytes


class Ledger:
    """
    Transition protocol over a CommitmentStore.

    Usage:
        ledger = Ledger(store)
        root = ledger.commitment
        witness = tree.witness(slot)

        result = ledger.activate(account, root, witness, "password")
        result = ledger.set_secret(result.account, result.commitment,
                                   witness, "password", "mnemonic words")
        secret = ledger.reveal_secret(result.account, result.commitment,
                                      witness, "password")
    """

    def __init__(self, store: Optional[CommitmentStore] = None):
        self.store = store or CommitmentStore()

    @property
    def commitment(self) -> bytes:
        return self.store.get_commitment()

    def update_commitment(self, new_root: bytes, expected_root: bytes) -> bytes:
        """Commit a root computed elsewhere (used at genesis)."""
        return self.store.update_commitment(new_root, expected_root)

    def activate(
        self,
        account: Account,
        root: bytes,
        witness: Witness,
        password: str
    ) -> TransitionResult:
        """
        Activate an account by setting its password.

        Raises:
            ConcurrencyError: root is stale
            AuthenticationError: witness does not place account under root
            ValidationError: account is already activated
        """
        slot = witness.calculate_index()
        try:
            self._check_inclusion(account, root, witness)
            if account.is_activated:
                raise ValidationError("Account is already activated")

            updated = account.activate(password)
            new_root = witness.calculate_root(updated.hash())
            self.store.update_commitment(new_root, root, action="ACTIVATE", slot=slot)
        except LedgerError as e:
            logger.warning("activate rejected for slot %d: %s", slot, type(e).__name__)
            raise

        return TransitionResult(updated, new_root)

    def set_secret(
        self,
        account: Account,
        root: bytes,
        witness: Witness,
        password: str,
        new_secret: str
    ) -> TransitionResult:
        """
        Replace an account's protected secret.

        Raises:
            ConcurrencyError: root is stale
            AuthenticationError: bad witness, inactive account or wrong password
            ValidationError: new_secret longer than MAX_SECRET_LENGTH
        """
        slot = witness.calculate_index()
        try:
            self._check_inclusion(account, root, witness)

            candidate = crypto.commit_password(password, account.identity)
            updated = account.set_secret(new_secret, candidate, account.hash())
            new_root = witness.calculate_root(updated.hash())
            self.store.update_commitment(new_root, root, action="SET_SECRET", slot=slot)
        except LedgerError as e:
            logger.warning("set_secret rejected for slot %d: %s", slot, type(e).__name__)
            raise

        return TransitionResult(updated, new_root)

    def reveal_secret(
        self,
        account: Account,
        root: bytes,
        witness: Witness,
        password: str
    ) -> str:
        """
        Reveal an account's secret. Read-only; the commitment is unchanged.

        Raises:
            ConcurrencyError: root is stale
            AuthenticationError: bad witness, inactive account or wrong password
        """
        slot = witness.calculate_index()
        try:
            self._check_inclusion(account, root, witness)
            candidate = crypto.commit_password(password, account.identity)
            return account.reveal_secret(candidate, account.hash())
        except LedgerError as e:
            logger.warning("reveal_secret rejected for slot %d: %s", slot, type(e).__name__)
            raise

    def _check_inclusion(self, account: Account, root: bytes, witness: Witness) -> None:
        """Caller's root must be current and the witness must reproduce it."""
        if not crypto.constant_compare(root, self.store.get_commitment()):
            raise ConcurrencyError("Stale root: the commitment changed since it was read")
        if not crypto.constant_compare(witness.calculate_root(account.hash()), root):
            raise AuthenticationError()
