#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

import marketplace.models  # noqa: E402,F401
from marketplace.core.config import load_settings  # noqa: E402
from marketplace.core.database import SessionLocal, configure_database  # noqa: E402
from marketplace.services.admin_bootstrap import upsert_admin_user  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or promote a marketplace admin account.")
    parser.add_argument("--email", required=True, help="Admin email")
    parser.add_argument("--password", help="Admin password (required when creating)")
    parser.add_argument("--name", default="Admin", help="Display name")
    parser.add_argument(
        "--reset-password",
        action="store_true",
        help="Overwrite the password of an existing account",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    configure_database(load_settings())

    db = SessionLocal()
    try:
        admin, created = upsert_admin_user(
            db,
            email=args.email,
            password=args.password,
            name=args.name,
            reset_password=args.reset_password,
        )
    except ValueError as exc:
        print(str(exc))
        return 1
    finally:
        db.close()

    action = "created" if created else "updated"
    print(f"Admin {action}: id={admin.id} email={admin.email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
