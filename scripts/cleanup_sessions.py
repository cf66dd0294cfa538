"""
Delete anonymous sessions older than their cookie lifetime, and expired
sign-in sessions. Meant to run from cron.
"""

from __future__ import annotations

import argparse
import logging
import sys

from sqlalchemy import delete

from dong_chinese import config
from dong_chinese.db import make_engine, make_session_factory, utcnow
from dong_chinese.schema import AuthSession, Verification
from dong_chinese.services.anonymous_session import MAX_AGE_DAYS, delete_expired_sessions

logger = logging.getLogger("cleanup_sessions")


def main() -> int:
    ap = argparse.ArgumentParser(description=__doc__)
    ap.add_argument("--max-age-days", type=int, default=MAX_AGE_DAYS, help="Anonymous session lifetime in days")
    args = ap.parse_args()

    config.configure_logging()
    Session = make_session_factory(make_engine())

    with Session() as db:
        anonymous = delete_expired_sessions(db, args.max_age_days)
        now = utcnow()
        sessions = db.execute(delete(AuthSession).where(AuthSession.expires_at < now)).rowcount
        tokens = db.execute(delete(Verification).where(Verification.expires_at < now)).rowcount
        db.commit()

    logger.info("deleted %d anonymous sessions, %d expired sessions, %d expired tokens", anonymous, sessions, tokens)
    return 0


if __name__ == "__main__":
    sys.exit(main())
