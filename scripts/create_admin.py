#!/usr/bin/env python3
"""
Create a password-based admin account.

Admins are the only users with a password; everyone else signs in through
Google or GitHub. Run against the database configured by the usual env vars
(DATABASE_URL or DB_*).

Usage:
  python scripts/create_admin.py --email admin@example.com --name "Site Admin"
  python scripts/create_admin.py --email admin@example.com --password '...'
"""

from __future__ import annotations

import argparse
import getpass
from pathlib import Path
import sys


# Allow `import app.*` from backend/ without an editable install
REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))


from app.auth.errors import AuthError  # noqa: E402
from app.core.database import SessionLocal  # noqa: E402
from app.models.refresh_token import RefreshToken  # noqa: E402,F401  (registers the User.refresh_tokens target)
from app.services.admin_auth import create_admin  # noqa: E402


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an admin user.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Admin")
    parser.add_argument(
        "--password",
        default=None,
        help="Admin password. Prompted for when omitted (keeps it out of shell history).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    password = args.password or getpass.getpass("Admin password: ")

    db = SessionLocal()
    try:
        user = create_admin(db, args.email, password, args.name)
    except AuthError as e:
        print(f"[create_admin] {e.code}: {e.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"[create_admin] created admin id={user.id} email={user.email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
