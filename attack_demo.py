"""
PWLedger - Attack Demonstration

Run: python attack_demo.py

What it shows (and why attacks fail):
1) Wrong password cannot reveal or replace a secret.
2) A witness for another slot does not prove inclusion.
3) A replayed password proof against an old record is rejected.
4) A stale root loses the race and must be rebuilt.
5) Journal rewriting is detected by the keyed MAC chain.
6) An edited snapshot row is refused on load.
"""

import os
import sqlite3
import tempfile

from pwledger import crypto
from pwledger.errors import AuthenticationError, ConcurrencyError, ConsistencyFault
from pwledger.ledger import Ledger
from pwledger.mirror import Mirror
from pwledger.storage import MirrorStore


LINE = "=" * 70


def section(title: str):
    print(f"\n{LINE}\n{title}\n{LINE}")


def main():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name
    password = "CorrectHorseBatteryStaple!"

    try:
        ledger = Ledger()
        mirror = Mirror.genesis(ledger, [crypto.generate_identity() for _ in range(4)])
        mirror.activate(0, password)
        mirror.set_secret(0, password, "abandon ability able about above absent")

        # 1) Wrong password
        section("Attack 1: Wrong password")
        try:
            mirror.reveal_secret(0, "guess123")
            print("Unexpected: wrong password revealed the secret")
        except AuthenticationError as e:
            print(f"Expected failure: wrong password rejected ({e})")

        # 2) Misplaced witness
        section("Attack 2: Witness for another slot")
        try:
            ledger.reveal_secret(mirror.account(0), ledger.commitment, mirror.witness(1), password)
            print("Unexpected: misplaced witness accepted")
        except AuthenticationError as e:
            print(f"Expected failure: inclusion proof rejected ({e})")

        # 3) Replayed proof against an old record
        section("Attack 3: Replayed password proof")
        old = mirror.account(0)
        mirror.set_secret(0, password, "second mnemonic")
        current = mirror.account(0)
        commitment = crypto.commit_password(password, current.identity)
        try:
            current.reveal_secret(commitment, old.hash())
            print("Unexpected: stale proof accepted")
        except AuthenticationError as e:
            print(f"Expected failure: proof bound to the old leaf hash ({e})")

        # 4) Stale root
        section("Attack 4: Stale root")
        stale_root = ledger.commitment
        stale_witness = mirror.witness(2)
        mirror.activate(1, "alice-pass")
        try:
            ledger.activate(mirror.account(2), stale_root, stale_witness, "olivia-pass")
            print("Unexpected: stale root committed")
        except ConcurrencyError as e:
            print(f"Expected failure: optimistic lock rejected the update ({e})")

        # 5) Journal tampering
        section("Attack 5: Journal tampering")
        # Rewrite an entry and re-MAC the rest of the chain with a guessed key
        journal = ledger.store.journal
        journal[1]["action"] = "FORGED"
        guessed_key = crypto.generate_journal_key()
        prev_mac = journal[0]["mac"]
        for entry in journal[1:]:
            entry["prev_mac"] = prev_mac
            entry["mac"] = crypto.compute_journal_mac(
                guessed_key, entry["seq"], entry["ts"], entry["action"], entry["slot"],
                entry["prev_root"], entry["new_root"], prev_mac
            )
            prev_mac = entry["mac"]
        if ledger.store.verify_journal():
            print("Unexpected: journal tampering not detected")
        else:
            print("Expected failure: journal tampering detected (MAC chain broken)")

        # 6) Snapshot tampering
        section("Attack 6: Snapshot tampering")
        with MirrorStore(db_path) as store:
            store.save(mirror)
        conn = sqlite3.connect(db_path)
        conn.execute("UPDATE accounts SET is_activated = 1, password_commitment = ? WHERE slot = 3",
                     (os.urandom(32),))
        conn.commit()
        conn.close()
        try:
            with MirrorStore(db_path) as store:
                store.load(ledger)
            print("Unexpected: tampered snapshot loaded")
        except ConsistencyFault as e:
            print(f"Expected failure: snapshot root mismatch ({e})")
    finally:
        for path in (db_path, db_path + "-wal", db_path + "-shm"):
            if os.path.exists(path):
                os.unlink(path)

    print("\nDemo complete. All showcased attacks failed as expected.")


if __name__ == "__main__":
    main()
