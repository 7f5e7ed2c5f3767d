"""
Create a user directly in the configured store.

Used to bootstrap the first administrator:

    python scripts/create_user.py --email admin@example.com --password ... --admin
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from filedepot.config import get_settings
from filedepot.dependencies import get_db_client
from filedepot.results import Err
from filedepot.session import DbIdentityProvider, InMemorySessionStore, create_user

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a file depot user")
    parser.add_argument("--email", required=True, help="Email address to sign in with")
    parser.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted)",
    )
    parser.add_argument(
        "--admin",
        action="store_true",
        help="Grant administrator access",
    )
    args = parser.parse_args()

    logging.basicConfig(level=get_settings().log_level.upper())
    if not get_settings().database_url:
        logger.warning("DATABASE_URL is not set; the user only lives in memory")

    password = args.password or getpass.getpass("Password: ")
    if not password:
        logger.error("A password is required")
        return 1

    # No session is opened, so an in-memory token store is enough here.
    identity = DbIdentityProvider(get_db_client(), InMemorySessionStore())
    result = create_user(identity, args.email, password, is_admin=args.admin)
    if isinstance(result, Err):
        if result.error.is_conflict:
            logger.error("A user with email %s already exists", args.email)
        else:
            logger.error("Could not create user: %s", result.error.message)
        return 1

    role = "administrator" if args.admin else "user"
    logger.info("Created %s %s (%s)", role, result.data.email, result.data.id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
