# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
import secrets
from datetime import timedelta
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from top5.infra.db import store_errors
from top5.infra.models import SessionRecord, utc_now

logger = logging.getLogger(__name__)

COOKIE_NAME = os.getenv("TOP5_COOKIE_NAME", "top5_session")
DEFAULT_MAX_AGE_SECONDS = int(os.getenv("TOP5_SESSION_MAX_AGE", "28800"))  # 8 hours


def _serializer() -> URLSafeTimedSerializer:
    secret = os.getenv("SECRET_KEY") or os.getenv("TOP5_SECRET_KEY")
    if not secret:
        raise RuntimeError("Missing SECRET_KEY (or TOP5_SECRET_KEY) in environment")
    salt = os.getenv("TOP5_SESSION_SALT", "top5.session.v1")
    return URLSafeTimedSerializer(secret_key=secret, salt=salt)


def sign_session(session_id: str) -> str:
    return _serializer().dumps({"sid": session_id})


def unsign_session(token: str, *, max_age: Optional[int] = DEFAULT_MAX_AGE_SECONDS) -> Optional[str]:
    """Return the session id inside a signed token, or None if it is bad/expired."""
    if not token:
        return None
    try:
        data = _serializer().loads(token, max_age=max_age)
    except (BadSignature, BadTimeSignature):
        return None
    sid = (data or {}).get("sid") if isinstance(data, dict) else None
    sid = str(sid or "").strip()
    return sid or None


class SessionStore:
    """Server-side sessions keyed by a random id; clients hold a signed token.

    A token resolves only while its row exists and has not expired; sign-out
    deletes the row.
    """

    def __init__(self, db: Session, *, max_age: int = DEFAULT_MAX_AGE_SECONDS) -> None:
        self.db = db
        self.max_age = max_age

    def create_session(self, user_id: int) -> str:
        sid = secrets.token_urlsafe(32)
        # Signing fails without a secret key; nothing may be written before it.
        token = sign_session(sid)
        now = utc_now()
        with store_errors("create_session"):
            self.db.add(
                SessionRecord(
                    id=sid,
                    user_id=user_id,
                    created_at=now,
                    expires_at=now + timedelta(seconds=self.max_age),
                )
            )
            self.db.commit()
        return token

    def resolve_session(self, token: str) -> Optional[int]:
        sid = unsign_session(token, max_age=self.max_age)
        if not sid:
            return None
        stmt = select(SessionRecord.user_id).where(
            SessionRecord.id == sid,
            SessionRecord.expires_at > utc_now(),
        )
        with store_errors("resolve_session"):
            return self.db.execute(stmt).scalar_one_or_none()

    def delete_session(self, token: str) -> None:
        sid = unsign_session(token, max_age=None)  # expired tokens still clean up their row
        if not sid:
            return
        with store_errors("delete_session"):
            self.db.execute(delete(SessionRecord).where(SessionRecord.id == sid))
            self.db.commit()

    def purge_expired(self) -> int:
        with store_errors("purge_expired"):
            res = self.db.execute(delete(SessionRecord).where(SessionRecord.expires_at <= utc_now()))
            self.db.commit()
        n = res.rowcount or 0
        if n:
            logger.info("Purged %s expired sessions", n)
        return n
