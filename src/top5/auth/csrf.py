# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Form tokens against cross-site request forgery.

A random nonce lives in its own cookie; every rendered form carries the
nonce signed with the application secret. A POST is accepted only when the
signed form value unwraps to the nonce in the cookie, which a foreign site
can neither read nor forge.
"""

from __future__ import annotations

import os
import secrets
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

CSRF_COOKIE_NAME = os.getenv("TOP5_CSRF_COOKIE_NAME", "top5_csrf")
CSRF_FIELD = "csrf_token"
DEFAULT_MAX_AGE_SECONDS = int(os.getenv("TOP5_CSRF_MAX_AGE", "28800"))


def _serializer() -> URLSafeTimedSerializer:
    secret = os.getenv("SECRET_KEY") or os.getenv("TOP5_SECRET_KEY")
    if not secret:
        raise RuntimeError("Missing SECRET_KEY (or TOP5_SECRET_KEY) in environment")
    return URLSafeTimedSerializer(secret_key=secret, salt="top5.csrf.v1")


def new_nonce() -> str:
    return secrets.token_urlsafe(32)


def issue_token(nonce: str) -> str:
    return _serializer().dumps({"n": nonce})


def check_token(nonce: Optional[str], token: Optional[str], *, max_age: int = DEFAULT_MAX_AGE_SECONDS) -> bool:
    if not nonce or not token:
        return False
    try:
        data = _serializer().loads(token, max_age=max_age)
    except (BadSignature, BadTimeSignature):
        return False
    signed = data.get("n") if isinstance(data, dict) else None
    return isinstance(signed, str) and secrets.compare_digest(signed, nonce)
