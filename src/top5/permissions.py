# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
from typing import Optional
from urllib.parse import urlencode

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from top5.auth.csrf import CSRF_COOKIE_NAME, CSRF_FIELD, check_token
from top5.auth.gate import AuthContext, AuthGate
from top5.auth.session import COOKIE_NAME, DEFAULT_MAX_AGE_SECONDS, SessionStore
from top5.auth.users import CredentialStore
from top5.errors import Unauthenticated
from top5.infra.db import get_db

logger = logging.getLogger(__name__)

LOGIN_PATH = "/"


def get_gate(db: Session = Depends(get_db)) -> AuthGate:
    return AuthGate(CredentialStore(db), SessionStore(db))


def session_token(request: Request) -> str:
    return request.cookies.get(COOKIE_NAME, "")


def current_user_optional(request: Request, gate: AuthGate = Depends(get_gate)) -> Optional[AuthContext]:
    try:
        return gate.authorize(session_token(request))
    except Unauthenticated:
        return None


def login_redirect_url(next_url: str = "", notice: str = "") -> str:
    params = {}
    if next_url and next_url != LOGIN_PATH:
        params["next"] = next_url
    if notice:
        params["notice"] = notice
    return LOGIN_PATH + ("?" + urlencode(params) if params else "")


def require_user(request: Request, gate: AuthGate = Depends(get_gate)) -> AuthContext:
    try:
        return gate.authorize(session_token(request))
    except Unauthenticated:
        pass
    next_url = str(request.url.path)
    if request.url.query:
        next_url += "?" + request.url.query
    loc = login_redirect_url(next_url, notice="auth_required")
    raise HTTPException(status_code=303, headers={"Location": loc})


def safe_next(next_url: str, default: str = "/tasks") -> str:
    """Only allow local absolute paths as post-login targets."""
    n = (next_url or "").strip()
    if not n.startswith("/") or n.startswith("//") or "\\" in n:
        return default
    return n


def cookie_settings() -> dict:
    secure = os.getenv("TOP5_COOKIE_SECURE", "false").lower() in {"1", "true", "yes", "y"}
    return {"httponly": True, "samesite": "lax", "secure": secure, "max_age": DEFAULT_MAX_AGE_SECONDS}


async def require_csrf(request: Request) -> None:
    """Reject a form POST whose csrf_token does not match the nonce cookie."""
    form = await request.form()
    token = form.get(CSRF_FIELD)
    if check_token(request.cookies.get(CSRF_COOKIE_NAME), token if isinstance(token, str) else None):
        return
    logger.warning("Rejected %s %s: missing or invalid form token", request.method, request.url.path)
    raise HTTPException(status_code=403, detail="Invalid or missing form token")
