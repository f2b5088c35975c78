#!/usr/bin/env python
"""
Re-encrypt stored AI provider keys with a new APP_ENCRYPTION_KEY.

Usage:
    # Print a fresh key
    python scripts/rotate_encryption_key.py --generate

    # Dry run: verify every stored key decrypts with the old key
    python scripts/rotate_encryption_key.py --old <hex> --new <hex>

    # Rewrite the rows
    python scripts/rotate_encryption_key.py --old <hex> --new <hex> --confirm

Deploy the new key as APP_ENCRYPTION_KEY right after a confirmed run.
"""
from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.flock import create_app
from app.flock.crypto import decrypt_secret, encrypt_secret, generate_key_hex, is_encryption_configured
from app.flock.db import bind_tenant, session_scope
from app.flock.models import Tenant
from app.flock.modules.ai.models import AiSettings


def rotate(s, old_key: str, new_key: str, *, confirm: bool) -> dict:
    counts = {"rotated": 0, "failed": 0, "skipped": 0}
    tenants = s.query(Tenant).order_by(Tenant.slug.asc()).all()
    for t in tenants:
        bind_tenant(s, t.id)
        row = s.query(AiSettings).filter(AiSettings.tenant_id == t.id).one_or_none()
        if row is None or not row.api_key_encrypted:
            counts["skipped"] += 1
            continue
        try:
            plaintext = decrypt_secret(row.api_key_encrypted, old_key)
        except ValueError:
            print(f"  FAILED {t.slug}: stored key does not decrypt with --old", flush=True)
            counts["failed"] += 1
            continue
        if confirm:
            row.api_key_encrypted = encrypt_secret(plaintext, new_key)
            row.updated_at = datetime.utcnow()
            s.flush()
        print(f"  {'rotated' if confirm else 'ok'} {t.slug} (****{row.key_last4 or ''})", flush=True)
        counts["rotated"] += 1
    bind_tenant(s, None)
    return counts


def main() -> None:
    parser = argparse.ArgumentParser(description="Rotate the AI key encryption key")
    parser.add_argument("--generate", action="store_true", help="Print a new random key and exit")
    parser.add_argument("--old", help="Current APP_ENCRYPTION_KEY (64 hex chars)")
    parser.add_argument("--new", help="Replacement key (64 hex chars)")
    parser.add_argument("--confirm", action="store_true", help="Write changes (default is a dry run)")
    args = parser.parse_args()

    if args.generate:
        print(generate_key_hex())
        return
    if not args.old or not args.new:
        parser.error("--old and --new are required")
    for label, key in (("--old", args.old), ("--new", args.new)):
        if not is_encryption_configured(key):
            parser.error(f"{label} must be 64 hex characters")
    if args.old.strip() == args.new.strip():
        parser.error("--old and --new are the same key")

    app = create_app()
    with session_scope(app) as s:
        counts = rotate(s, args.old, args.new, confirm=args.confirm)
        if counts["failed"] and args.confirm:
            # all or nothing
            s.rollback()
            print(f"Aborted: {counts['failed']} key(s) failed to decrypt; nothing was written.", flush=True)
            sys.exit(1)

    mode = "Rotation" if args.confirm else "Dry run"
    print(
        f"{mode} complete: rotated={counts['rotated']} failed={counts['failed']} skipped={counts['skipped']}",
        flush=True,
    )


if __name__ == "__main__":
    main()
