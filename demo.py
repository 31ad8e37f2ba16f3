from auditchain import AuditLog, Category, Outcome, SigningKeypair
import os
import tempfile

print("--- auditchain Live Demo ---")

with tempfile.TemporaryDirectory() as tmpdir:
    db_path = os.path.join(tmpdir, "audit.db")

    # 1. Open the log
    log = AuditLog(db_path)
    print(f"[+] Audit log opened at {db_path}")

    # 2. Record actions from two tools
    log.record("toolA", Category.AUTH, Outcome.SUCCESS, "login ok", actor="alice")
    entry = log.record("toolB", Category.CREDENTIAL, Outcome.FAILURE, "vault locked",
                       metadata={'vault': "main"})
    log.record("toolA", Category.REVIEW, Outcome.SUCCESS, "posted comment")
    print(f"[+] Recorded {log.count()} entries, tail hash {entry.entry_hash[:16]}...")

    # 3. Query
    for found in log.query(category=Category.CREDENTIAL):
        print(f"    - #{found.sequence} {found.tool}: {found.summary} ({found.outcome.value})")

    # 4. Checkpoint the tail
    keypair = SigningKeypair.generate()
    checkpoint = log.checkpoint(keypair)
    print(f"[+] Checkpoint signed at sequence {checkpoint.sequence}")

    # 5. Verify
    report = log.verify()
    print(f"[+] Chain valid: {report.valid} ({report.checked} entries checked)")
    print(f"[+] Checkpoint holds: {log.verify_checkpoint(checkpoint, keypair.get_public_bytes())}")

    # 6. Rotate
    result = log.rotate(os.path.join(tmpdir, "audit.1.db"))
    print(f"[+] Rotated {result.archived_entries} entries; generation {result.generation}")

    log.close()

print("--- Demo Complete ---")
