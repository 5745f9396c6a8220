# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from top5.auth.passwords import hash_password
from top5.errors import UserNotFound
from top5.infra.db import store_errors
from top5.infra.models import User

logger = logging.getLogger(__name__)

USERNAME_MAX_LEN = 150


class CredentialStore:
    """Username -> user/password-hash lookups backed by the users table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_user_by_username(self, username: str) -> Optional[User]:
        u = (username or "").strip()
        if not u:
            return None
        with store_errors("find_user_by_username"):
            return self.db.execute(select(User).where(User.username == u)).scalar_one_or_none()

    def find_user_by_id(self, user_id: int) -> User:
        with store_errors("find_user_by_id"):
            user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFound(f"User id {user_id!r} does not exist")
        return user

    def create_user(self, username: str, password: str) -> User:
        """Register a new user. Raises ValueError with a displayable message."""
        u = (username or "").strip()
        if not u:
            raise ValueError("Username must not be empty")
        if len(u) > USERNAME_MAX_LEN:
            raise ValueError(f"Username must be at most {USERNAME_MAX_LEN} characters")
        if not password:
            raise ValueError("Password must not be empty")
        if self.find_user_by_username(u) is not None:
            raise ValueError(f"Username '{u}' is already taken")

        user = User(username=u, password_hash=hash_password(password))
        with store_errors("create_user"):
            self.db.add(user)
            try:
                self.db.commit()
            except IntegrityError:
                # Lost a race against a concurrent registration.
                self.db.rollback()
                raise ValueError(f"Username '{u}' is already taken") from None
        logger.info("Registered user username=%s id=%s", user.username, user.id)
        return user

    def import_users_file(self, path: Path) -> int:
        """Create users listed in a YAML file that do not exist yet.

        Expected layout (password hashes produced by ``hash_password``)::

            version: 1
            users:
              alice:
                password_hash: "$argon2id$..."

        Existing usernames are left untouched. Returns the number created.
        """
        if not path.exists():
            return 0
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        users = (raw.get("users") or {}) if isinstance(raw, dict) else {}
        created = 0
        for uname, udata in users.items():
            if not isinstance(udata, dict):
                continue
            username = str(uname).strip()
            ph = str(udata.get("password_hash") or "").strip()
            if not username or not ph:
                continue
            if self.find_user_by_username(username) is not None:
                continue
            with store_errors("import_users_file"):
                self.db.add(User(username=username, password_hash=ph))
                self.db.commit()
            created += 1
        if created:
            logger.info("Imported %s users from %s", created, path)
        return created
