"""
PWLedger - Guided Walkthrough (single run, no user input)

Run: python demo.py

Drives a small ledger of four sample accounts (Bob, Alice, Olivia,
Charlie) and explains what happens under the hood at each step:
 - Genesis (accounts created, first root committed)
 - Activation of every account (password commitment set)
 - Setting a secret (mnemonic encrypted under the password key)
 - Revealing the secret (correct and wrong password)
 - Journal verification
 - Saving and reloading the mirror snapshot

All steps print the state plus a short "behind the scenes" note.
"""

import logging
import os
import tempfile
from textwrap import indent

from pwledger import crypto
from pwledger.errors import AuthenticationError
from pwledger.ledger import Ledger
from pwledger.mirror import Mirror
from pwledger.storage import MirrorStore


LINE = "=" * 70
NAMES = ["Bob", "Alice", "Olivia", "Charlie"]
PASSWORDS = {"Bob": "bob-pass", "Alice": "alice-pass", "Olivia": "olivia-pass", "Charlie": "charlie-pass"}


def step(title: str, code_path: str):
    print(f"\n{LINE}\n{title}  (code: {code_path})\n{LINE}")


def explain(title: str, body: str):
    print(f"\n[Behind the scenes] {title}")
    print(indent(body.strip(), "  "))


def short(value: bytes) -> str:
    return value.hex()[:16] + "..."


def main():
    logging.basicConfig(level=logging.INFO, format="  [log] %(name)s: %(message)s")

    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_path = tmp.name
    tmp.close()

    try:
        # 1) Genesis
        step("Genesis", "pwledger/mirror.py:Mirror.genesis")
        ledger = Ledger()
        print(f"Authoritative root before genesis: {short(ledger.commitment)}")
        identities = [crypto.generate_identity() for _ in NAMES]
        mirror = Mirror.genesis(ledger, identities, depth=8)
        for slot, name in enumerate(NAMES):
            print(f"  slot {slot}: {name:8} identity={short(identities[slot])}")
        print(f"Authoritative root: {short(ledger.commitment)}")
        explain(
            "Merkle commitment",
            "Each account record is hashed into a leaf (password commitment, identity, "
            "encrypted secret, activation flag - always in that order). A depth-8 tree holds "
            "256 slots; unused slots hold the zero hash. The root replaces the zero sentinel "
            "in the authoritative store with an optimistic lock.",
        )

        # 2) Activate every account
        step("Activate accounts", "pwledger/ledger.py:Ledger.activate")
        for slot, name in enumerate(NAMES):
            before = ledger.commitment
            mirror.activate(slot, PASSWORDS[name])
            print(f"  {name:8} activated: {mirror.account(slot).is_activated}  "
                  f"root {short(before)} -> {short(ledger.commitment)}")
        explain(
            "Inclusion proof + password commitment",
            "The mirror builds a witness for the slot. The ledger replays it against the "
            "current root, stores PBKDF2(password, identity, 16) as the password commitment, "
            "computes the new root with the same witness and commits it only if the root "
            "hasn't moved. The mirror then re-applies the change and checks both roots agree.",
        )

        # 3) Set a secret
        step("Set secret", "pwledger/ledger.py:Ledger.set_secret")
        mnemonic = "abandon ability able about above absent absorb abstract"
        mirror.set_secret(0, PASSWORDS["Bob"], mnemonic)
        print(f"  Bob's secret set ({len(mnemonic)} characters)")
        print(f"  Stored ciphertext: {short(mirror.account(0).encrypted_secret)}")
        explain(
            "Leaf-bound password proof",
            "The password proof must match H(commitment || current leaf hash), so a proof "
            "made against an older version of the record doesn't verify. The secret is "
            "encrypted with AES-256-CBC under the commitment key and the account's fixed IV.",
        )

        # 4) Reveal
        step("Reveal secret", "pwledger/ledger.py:Ledger.reveal_secret")
        print(f"  With correct password: {mirror.reveal_secret(0, PASSWORDS['Bob'])}")
        try:
            mirror.reveal_secret(0, "wrong")
            print("  Unexpected: wrong password revealed the secret")
        except AuthenticationError as e:
            print(f"  With wrong password: rejected ({e})")
        explain(
            "Read-only transition",
            "Reveal needs the same inclusion proof and password proof but commits nothing. "
            "The error never says whether the password or the proof was wrong.",
        )

        # 5) Journal
        step("Verify journal", "pwledger/ledger.py:CommitmentStore.verify_journal")
        for entry in ledger.store.journal:
            print(f"  #{entry['seq']:<2} {entry['action']:<11} slot={entry['slot']}  "
                  f"{short(entry['prev_root'])} -> {short(entry['new_root'])}")
        print(f"  Journal intact: {ledger.store.verify_journal()}")

        # 6) Snapshot
        step("Save and reload mirror", "pwledger/storage.py:MirrorStore")
        with MirrorStore(db_path) as store:
            store.save(mirror)
        with MirrorStore(db_path) as store:
            reloaded = store.load(ledger)
        print(f"  Reloaded {len(reloaded)} accounts, root {short(reloaded.root)}")
        print(f"  Bob's secret from the reloaded mirror: {reloaded.reveal_secret(0, PASSWORDS['Bob'])}")
        explain(
            "Snapshot checks",
            "Rows are rehashed on load. The rebuilt root must equal the saved root and the "
            "authoritative commitment, so edited or outdated snapshots are refused.",
        )

    finally:
        for path in (db_path, db_path + "-wal", db_path + "-shm"):
            if os.path.exists(path):
                os.unlink(path)

    print("\nWalkthrough complete.")


if __name__ == "__main__":
    main()
