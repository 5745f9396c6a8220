# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Authentication gate: sign-in, per-request authorization and sign-out.

The gate owns the policy only. Users come from a CredentialStore and
sessions from a SessionStore; both are built per request around the same
database session and handed in explicitly.

Only two sign-in outcomes are visible to callers: a token, or
InvalidCredentials. Unknown usernames, wrong passwords and empty submissions
all end in the same exception type (EmptyCredentials, the malformed-submission
case, is a subclass).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from top5.auth.passwords import burn_verification, verify_password
from top5.auth.session import SessionStore
from top5.auth.users import CredentialStore
from top5.errors import EmptyCredentials, InvalidCredentials, Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthContext:
    """Request-scoped identity of an authenticated caller."""

    user_id: int
    session_token: str


class AuthGate:
    def __init__(self, users: CredentialStore, sessions: SessionStore) -> None:
        self.users = users
        self.sessions = sessions

    def sign_in(self, username: str, password: str) -> str:
        username = (username or "").strip()
        if not username or not password:
            logger.info("Sign-in rejected: empty submission")
            raise EmptyCredentials("Username or password is missing")

        user = self.users.find_user_by_username(username)
        if user is None:
            burn_verification(password)
            logger.info("Sign-in failed username=%s", username)
            raise InvalidCredentials("Invalid credentials")

        if not verify_password(user.password_hash, password):
            logger.info("Sign-in failed username=%s", username)
            raise InvalidCredentials("Invalid credentials")

        token = self.sessions.create_session(user.id)
        logger.info("Signed in username=%s id=%s", user.username, user.id)
        return token

    def authorize(self, token: Optional[str]) -> AuthContext:
        if not token:
            raise Unauthenticated("No session")
        user_id = self.sessions.resolve_session(token)
        if user_id is None:
            raise Unauthenticated("Session invalid or expired")
        return AuthContext(user_id=user_id, session_token=token)

    def sign_out(self, token: Optional[str]) -> None:
        if not token:
            return
        self.sessions.delete_session(token)
        logger.info("Signed out")
