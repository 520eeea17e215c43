"""
PWLedger - Account Record

One account = one identity, one password, one protected secret.

Records are immutable values: every operation that changes a record
returns a new Account and leaves the original untouched, so a transition
that fails halfway never leaves a half-updated record behind.

Lifecycle:
    create()  →  inactive, no password, no secret, fresh IV
    activate(password)  →  active, password commitment stored
    set_secret(...)  →  secret re-encrypted under the commitment key + IV
    reveal_secret(...)  →  plaintext (read-only)
"""

import logging
from dataclasses import dataclass, replace

from . import crypto
from .errors import AuthenticationError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Account:
    """
    Account record as committed to the ledger.

    Fields are listed in storage order; hash() uses its own fixed order
    (password_commitment, identity, encrypted_secret, is_activated).
    """

    identity: bytes
    iv: bytes
    encrypted_secret: bytes = b""
    password_commitment: bytes = b""
    is_activated: bool = False

    def __post_init__(self):
        if not isinstance(self.identity, bytes) or len(self.identity) != crypto.IDENTITY_SIZE:
            raise ValidationError(f"identity must be {crypto.IDENTITY_SIZE} bytes")
        if not isinstance(self.iv, bytes) or len(self.iv) != crypto.IV_SIZE:
            raise ValidationError(f"iv must be {crypto.IV_SIZE} bytes")
        if self.password_commitment and len(self.password_commitment) != crypto.KEY_SIZE:
            raise ValidationError(f"password_commitment must be empty or {crypto.KEY_SIZE} bytes")
        if self.is_activated and not self.password_commitment:
            raise ValidationError("activated account has no password commitment")
        if self.encrypted_secret and not self.is_activated:
            raise ValidationError("inactive account cannot hold a secret")

    @classmethod
    def create(cls, identity: bytes) -> "Account":
        """New inactive account with a freshly generated IV."""
        return cls(identity=identity, iv=crypto.generate_iv())

    def hash(self) -> bytes:
        """Leaf hash of this record."""
        return crypto.hash_leaf(
            self.password_commitment,
            self.identity,
            self.encrypted_secret,
            self.is_activated
        )

    def activate(self, password: str) -> "Account":
        """
        Set the account password and mark it active.

        Activation happens once. Calling it on an active account returns
        the same record unchanged.
        """
        if self.is_activated:
            logger.info("Account %s is already activated", self.identity.hex()[:16])
            return self

        return replace(
            self,
            password_commitment=crypto.commit_password(password, self.identity),
            is_activated=True,
        )

    def verify_password(self, candidate_commitment: bytes, expected_leaf_hash: bytes) -> None:
        """
        Check a password commitment against this exact record.

        Two checks, both always evaluated:
        - H(candidate || expected_leaf_hash) == H(commitment || self.hash())
          ties the proof to the current leaf, so a proof built for an older
          version of the record does not verify
        - candidate == commitment

        Raises:
            AuthenticationError: either check failed (never says which)
        """
        given = crypto.hash_fields(candidate_commitment, expected_leaf_hash)
        origin = crypto.hash_fields(self.password_commitment, self.hash())

        bound = crypto.constant_compare(given, origin)
        matches = crypto.constant_compare(candidate_commitment, self.password_commitment)
        if not (bound & matches):
            raise AuthenticationError()

    def set_secret(
        self,
        new_secret: str,
        candidate_commitment: bytes,
        expected_leaf_hash: bytes
    ) -> "Account":
        """
        Replace the protected secret.

        Args:
            new_secret: Plaintext mnemonic/key, at most MAX_SECRET_LENGTH characters
            candidate_commitment: commit_password(password, identity) from the caller
            expected_leaf_hash: Leaf hash the caller believes is current

        Returns:
            New Account holding the re-encrypted secret

        Raises:
            AuthenticationError: inactive account or wrong password
            ValidationError: secret too long (active accounts only)
        """
        if not self.is_activated:
            raise AuthenticationError()
        if len(new_secret) > crypto.MAX_SECRET_LENGTH:
            raise ValidationError(f"{crypto.MAX_SECRET_LENGTH} characters or less.")
        self.verify_password(candidate_commitment, expected_leaf_hash)

        ciphertext = crypto.encrypt(
            self.password_commitment,
            new_secret.encode('utf-8'),
            self.iv
        )
        return replace(self, encrypted_secret=ciphertext)

    def reveal_secret(self, candidate_commitment: bytes, expected_leaf_hash: bytes) -> str:
        """
        Decrypt the protected secret.

        An active account that never had a secret set reveals "".

        Raises:
            AuthenticationError: inactive account or wrong password
            ValidationError: stored ciphertext is malformed
        """
        if not self.is_activated:
            raise AuthenticationError()
        self.verify_password(candidate_commitment, expected_leaf_hash)

        if not self.encrypted_secret:
            return ""
        plaintext = crypto.decrypt(self.password_commitment, self.encrypted_secret, self.iv)
        return plaintext.decode('utf-8')
