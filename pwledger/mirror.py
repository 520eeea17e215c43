"""
PWLedger - Off-chain Mirror

A local copy of every account plus the Merkle tree over them, kept in
lock-step with the authoritative commitment.

The mirror is derived state only. It never commits anything by itself:
each operation asks the ledger to commit first, then re-applies the same
mutation locally and checks that its own root equals the new
authoritative root. If they differ the mirror and the ledger have
diverged for good and ConsistencyFault is raised.
"""

import logging
from typing import Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

from . import crypto
from .account import Account
from .errors import ConsistencyFault, LedgerError, ValidationError
from .ledger import Ledger
from .merkle import MerkleTree, Witness

logger = logging.getLogger(__name__)


class Mirror:
    """
    Single-owner replica of the account set.

    Usage:
        ledger = Ledger()
        mirror = Mirror.genesis(ledger, [bob_key, alice_key])

        mirror.activate(0, "bob-password")
        mirror.set_secret(0, "bob-password", "mnemonic words ...")
        secret = mirror.reveal_secret(0, "bob-password")
    """

    def __init__(self, ledger: Ledger, depth: int = crypto.DEFAULT_TREE_DEPTH):
        self.ledger = ledger
        self.tree = MerkleTree(depth)
        self._accounts: Dict[int, Account] = {}
        self._slots: Dict[bytes, int] = {}

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def genesis(
        cls,
        ledger: Ledger,
        identities: Union[Sequence[bytes], Mapping[int, bytes]],
        depth: int = crypto.DEFAULT_TREE_DEPTH
    ) -> "Mirror":
        """
        Create one inactive account per identity and commit the first root.

        Args:
            ledger: Ledger whose commitment is still ZERO_HASH
            identities: Identities in slot order, or an explicit slot → identity map
            depth: Tree depth (capacity 2**depth)

        Raises:
            ValidationError: duplicate identity/slot or slot out of range
            ConcurrencyError: the ledger already holds a commitment
        """
        mirror = cls(ledger, depth)
        if isinstance(identities, Mapping):
            placements = identities.items()
        else:
            placements = enumerate(identities)

        for slot, identity in placements:
            mirror._place(slot, Account.create(identity))

        ledger.store.update_commitment(mirror.root, crypto.ZERO_HASH, action="GENESIS")
        logger.info("Genesis: %d accounts, depth %d", len(mirror), depth)
        mirror.check_sync()
        return mirror

    @classmethod
    def restore(
        cls,
        ledger: Ledger,
        accounts: Mapping[int, Account],
        depth: int
    ) -> "Mirror":
        """
        Rebuild a mirror from saved accounts without committing anything.

        Raises:
            ConsistencyFault: the rebuilt root is not the ledger's commitment
        """
        mirror = cls(ledger, depth)
        for slot, account in accounts.items():
            mirror._place(slot, account)
        mirror.check_sync()
        return mirror

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def activate(self, slot: int, password: str) -> Account:
        """Activate the account at slot and return its new record."""
        account = self.account(slot)
        root, witness = self.ledger.commitment, self.tree.witness(slot)

        self.ledger.activate(account, root, witness, password)

        self._apply(slot, lambda: account.activate(password))
        return self._accounts[slot]

    def set_secret(self, slot: int, password: str, new_secret: str) -> Account:
        """Replace the secret at slot and return the new record."""
        account = self.account(slot)
        root, witness = self.ledger.commitment, self.tree.witness(slot)

        self.ledger.set_secret(account, root, witness, password, new_secret)

        candidate = crypto.commit_password(password, account.identity)
        self._apply(slot, lambda: account.set_secret(new_secret, candidate, account.hash()))
        return self._accounts[slot]

    def reveal_secret(self, slot: int, password: str) -> str:
        """Reveal the secret at slot. Nothing changes on either side."""
        account = self.account(slot)
        root, witness = self.ledger.commitment, self.tree.witness(slot)
        return self.ledger.reveal_secret(account, root, witness, password)

    def check_sync(self) -> None:
        """
        Compare the local root with the authoritative commitment.

        Raises:
            ConsistencyFault: roots differ
        """
        local = self.tree.get_root()
        authoritative = self.ledger.commitment
        if not crypto.constant_compare(local, authoritative):
            logger.error(
                "Mirror diverged: local root %s, authoritative root %s",
                local.hex()[:16], authoritative.hex()[:16]
            )
            raise ConsistencyFault("Mirror root does not match the authoritative commitment")

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def root(self) -> bytes:
        return self.tree.get_root()

    @property
    def depth(self) -> int:
        return self.tree.depth

    def __len__(self) -> int:
        return len(self._accounts)

    def accounts(self) -> Iterator[Tuple[int, Account]]:
        """(slot, account) pairs in slot order."""
        for slot in sorted(self._accounts):
            yield slot, self._accounts[slot]

    def account(self, slot: int) -> Account:
        try:
            return self._accounts[slot]
        except KeyError:
            raise ValidationError(f"No account at slot {slot}") from None

    def slot_of(self, identity: bytes) -> Optional[int]:
        return self._slots.get(identity)

    def witness(self, slot: int) -> Witness:
        self.account(slot)
        return self.tree.witness(slot)

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _place(self, slot: int, account: Account) -> None:
        """Put an account into an empty slot (construction only)."""
        if slot in self._accounts:
            raise ValidationError(f"Slot {slot} is already assigned")
        if account.identity in self._slots:
            raise ValidationError("Identity is already assigned to a slot")
        self.tree.set_leaf(slot, account.hash())
        self._accounts[slot] = account
        self._slots[account.identity] = slot

    def _apply(self, slot: int, mutate) -> None:
        """
        Re-apply a committed mutation locally and check the roots agree.

        The ledger has already committed, so a local failure here means
        divergence, not a rejected request.
        """
        try:
            updated = mutate()
        except LedgerError as e:
            logger.error("Local replay failed for slot %d after commit: %s", slot, e)
            raise ConsistencyFault(f"Local replay failed for slot {slot}") from e

        self._accounts[slot] = updated
        self.tree.set_leaf(slot, updated.hash())
        self.check_sync()
