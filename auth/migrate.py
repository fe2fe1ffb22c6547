"""
auth/migrate.py -- Explicit maintenance pass for legacy password rows.

Older data may hold plaintext passwords. Login never compares plaintext and
never upgrades a row on the fly; running this pass (`python main.py
rehash-passwords`) is the only way such rows become usable again.
"""

from __future__ import annotations

import logging

from auth.store import UserStore
from auth.tokens import hash_password, needs_rehash

logger = logging.getLogger("enrollment.auth")


def rehash_legacy_passwords(store: UserStore, dry_run: bool = False) -> list[str]:
    """Hash every stored password that is not already a bcrypt hash.

    Returns the usernames that were (or, with dry_run, would be) updated.
    Rows with an empty password are skipped; there is nothing to hash.
    """
    updated: list[str] = []
    for user in store.list_users():
        if not user.hashed_password or not needs_rehash(user.hashed_password):
            continue
        if not dry_run:
            store.update_password(user.id, hash_password(user.hashed_password))
        updated.append(user.username)
        logger.info("Rehashed legacy password for %s%s", user.username, " (dry run)" if dry_run else "")
    return updated
