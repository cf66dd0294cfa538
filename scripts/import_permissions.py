"""
Grant a permission to users identified by email address or username.

Usage:
  python scripts/import_permissions.py alice@example.com bob
  python scripts/import_permissions.py --file reviewers.txt --permission wikiEdit
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dong_chinese import config
from dong_chinese.db import init_db, make_engine, make_session_factory
from dong_chinese.services.auth import find_user_by_email, find_user_by_username
from dong_chinese.services.permissions import WIKI_EDIT, grant_permission

logger = logging.getLogger("import_permissions")


def main() -> int:
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument("users", nargs="*", help="Email addresses or usernames")
    ap.add_argument("--file", type=Path, help="File with one email or username per line")
    ap.add_argument("--permission", default=WIKI_EDIT, help=f"Permission to grant (default: {WIKI_EDIT})")
    args = ap.parse_args()

    config.configure_logging()

    identifiers = list(args.users)
    if args.file:
        identifiers += [
            line.strip()
            for line in args.file.read_text(encoding="utf-8").splitlines()
            if line.strip() and not line.startswith("#")
        ]
    if not identifiers:
        ap.error("no users given")

    engine = make_engine()
    init_db(engine)
    Session = make_session_factory(engine)

    granted = skipped = missing = 0
    with Session() as db:
        for ident in identifiers:
            user = find_user_by_email(db, ident) if "@" in ident else find_user_by_username(db, ident)
            if user is None:
                logger.warning("no user for %r, skipping", ident)
                missing += 1
                continue
            if grant_permission(db, user.id, args.permission):
                granted += 1
            else:
                skipped += 1

    logger.info("granted %s to %d users (%d already had it, %d not found)", args.permission, granted, skipped, missing)
    return 1 if missing else 0


if __name__ == "__main__":
    sys.exit(main())
