# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from top5.auth.csrf import CSRF_COOKIE_NAME, issue_token, new_nonce
from top5.auth.gate import AuthContext, AuthGate
from top5.auth.session import COOKIE_NAME, SessionStore
from top5.auth.users import CredentialStore
from top5.errors import InvalidCredentials, StoreUnavailable, TaskNotFound, UserNotFound
from top5.infra.db import get_db, init_db, new_session
from top5.permissions import (
    cookie_settings,
    current_user_optional,
    get_gate,
    login_redirect_url,
    require_csrf,
    require_user,
    safe_next,
)
from top5.services.task_service import (
    STATUS_SUGGESTIONS,
    add_note,
    create_task,
    delete_note,
    delete_task,
    get_task,
    list_tasks,
    task_form_values,
    update_note,
    update_task,
)

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

SIGN_IN_INFO = "Login using your Username / Password"
SIGN_IN_ERROR = "Username or password is missing or incorrect"
REGISTER_INFO = "Enter all details to sign up for this service."
NOTICES = {
    "auth_required": "You must sign in to access this resource.",
    "signed_out": "You have been signed out.",
    "registered": "Account created. Sign in with your new username and password.",
}
NOTE_ERRORS = {
    "empty_note": "The note must not be empty.",
}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    with new_session() as db:
        users_path = os.getenv("TOP5_USERS_PATH", "")
        if users_path:
            CredentialStore(db).import_users_file(Path(users_path))
        SessionStore(db).purge_expired()
    yield


app = FastAPI(lifespan=lifespan)

app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


@app.exception_handler(StoreUnavailable)
async def _store_unavailable(request: Request, exc: StoreUnavailable):
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return PlainTextResponse("Service temporarily unavailable (storage error).", status_code=503)


@app.exception_handler(UserNotFound)
async def _user_not_found(request: Request, exc: UserNotFound):
    logger.error("Session references a missing user on %s: %s", request.url.path, exc)
    return PlainTextResponse("Internal error: user lookup failed.", status_code=500)


@app.exception_handler(TaskNotFound)
async def _task_not_found(request: Request, exc: TaskNotFound):
    return PlainTextResponse("Not found.", status_code=404)


def _render(
    request: Request,
    template_name: str,
    ctx: dict,
    *,
    username: Optional[str] = None,
    status_code: int = 200,
):
    """TemplateResponse wrapper injecting the signed-in username and a form token."""
    nonce = request.cookies.get(CSRF_COOKIE_NAME) or new_nonce()
    base_ctx = {"current_user": username, "csrf_token": issue_token(nonce)}
    merged = {**base_ctx, **(ctx or {})}
    resp = templates.TemplateResponse(request, template_name, merged, status_code=status_code)
    if request.cookies.get(CSRF_COOKIE_NAME) != nonce:
        settings = cookie_settings()
        settings.pop("max_age")
        resp.set_cookie(CSRF_COOKIE_NAME, nonce, **settings)
    return resp


def _username(db: Session, auth: AuthContext) -> str:
    return CredentialStore(db).find_user_by_id(auth.user_id).username


async def _form_fields(request: Request) -> dict:
    form = await request.form()
    return {str(k): ("" if v is None else str(v)) for k, v in form.items()}


# ------------------ Sign-in / registration ------------------


@app.get("/", response_class=HTMLResponse)
def login_get(
    request: Request,
    next: str = "",
    notice: str = "",
    auth: Optional[AuthContext] = Depends(current_user_optional),
):
    if auth is not None:
        return RedirectResponse(url=safe_next(next), status_code=303)
    return _render(
        request,
        "login.html",
        {"next": next, "info": NOTICES.get(notice, SIGN_IN_INFO), "error": "", "username": ""},
    )


@app.post("/")
def login_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    next: str = Form(""),
    _csrf: None = Depends(require_csrf),
    gate: AuthGate = Depends(get_gate),
):
    try:
        token = gate.sign_in(username, password)
    except InvalidCredentials:
        return _render(
            request,
            "login.html",
            {"next": next, "info": "", "error": SIGN_IN_ERROR, "username": username},
        )
    resp = RedirectResponse(url=safe_next(next), status_code=303)
    resp.set_cookie(COOKIE_NAME, token, **cookie_settings())
    return resp


@app.get("/register", response_class=HTMLResponse)
def register_get(request: Request):
    return _render(request, "register.html", {"info": REGISTER_INFO, "error": "", "username": ""})


@app.post("/register")
def register_post(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
    password_confirm: str = Form(""),
    _csrf: None = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        if password != password_confirm:
            raise ValueError("Passwords do not match")
        CredentialStore(db).create_user(username, password)
    except ValueError as e:
        return _render(
            request,
            "register.html",
            {"info": "", "error": str(e), "username": username},
            status_code=400,
        )
    return RedirectResponse(url=login_redirect_url(notice="registered"), status_code=303)


@app.post("/tasks/logout")
def logout(
    auth: AuthContext = Depends(require_user),
    _csrf: None = Depends(require_csrf),
    gate: AuthGate = Depends(get_gate),
):
    gate.sign_out(auth.session_token)
    resp = RedirectResponse(url=login_redirect_url(notice="signed_out"), status_code=303)
    resp.delete_cookie(COOKIE_NAME)
    return resp


# ------------------ Tasks ------------------


@app.get("/tasks", response_class=HTMLResponse)
def tasks_index(request: Request, auth: AuthContext = Depends(require_user), db: Session = Depends(get_db)):
    tasks = list_tasks(db, user_id=auth.user_id)
    return _render(request, "tasks.html", {"tasks": tasks}, username=_username(db, auth))


@app.get("/tasks/new", response_class=HTMLResponse)
def task_new(request: Request, auth: AuthContext = Depends(require_user), db: Session = Depends(get_db)):
    return _render(
        request,
        "task_form.html",
        {"task": None, "values": {}, "error": "", "statuses": STATUS_SUGGESTIONS},
        username=_username(db, auth),
    )


@app.post("/tasks")
async def task_create(
    request: Request,
    auth: AuthContext = Depends(require_user),
    _csrf: None = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    fields = await _form_fields(request)
    try:
        task = create_task(db, user_id=auth.user_id, fields=fields)
    except ValueError as e:
        return _render(
            request,
            "task_form.html",
            {"task": None, "values": fields, "error": str(e), "statuses": STATUS_SUGGESTIONS},
            username=_username(db, auth),
            status_code=400,
        )
    return RedirectResponse(url=f"/tasks/{task.id}", status_code=303)


@app.get("/tasks/{task_id}", response_class=HTMLResponse)
def task_show(
    request: Request,
    task_id: int,
    error: str = "",
    auth: AuthContext = Depends(require_user),
    db: Session = Depends(get_db),
):
    task = get_task(db, user_id=auth.user_id, task_id=task_id)
    return _render(
        request,
        "task_detail.html",
        {"task": task, "error": NOTE_ERRORS.get(error, "")},
        username=_username(db, auth),
    )


@app.get("/tasks/{task_id}/edit", response_class=HTMLResponse)
def task_edit(request: Request, task_id: int, auth: AuthContext = Depends(require_user), db: Session = Depends(get_db)):
    task = get_task(db, user_id=auth.user_id, task_id=task_id)
    return _render(
        request,
        "task_form.html",
        {"task": task, "values": task_form_values(task), "error": "", "statuses": STATUS_SUGGESTIONS},
        username=_username(db, auth),
    )


@app.post("/tasks/{task_id}/edit")
async def task_update(
    request: Request,
    task_id: int,
    auth: AuthContext = Depends(require_user),
    _csrf: None = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    fields = await _form_fields(request)
    try:
        update_task(db, user_id=auth.user_id, task_id=task_id, fields=fields)
    except ValueError as e:
        task = get_task(db, user_id=auth.user_id, task_id=task_id)
        return _render(
            request,
            "task_form.html",
            {"task": task, "values": fields, "error": str(e), "statuses": STATUS_SUGGESTIONS},
            username=_username(db, auth),
            status_code=400,
        )
    return RedirectResponse(url=f"/tasks/{task_id}", status_code=303)


@app.post("/tasks/{task_id}/delete")
def task_delete(
    task_id: int,
    auth: AuthContext = Depends(require_user),
    _csrf: None = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    delete_task(db, user_id=auth.user_id, task_id=task_id)
    return RedirectResponse(url="/tasks", status_code=303)


# ------------------ Notes ------------------


def _note_error_redirect(task_id: int, key: str) -> RedirectResponse:
    return RedirectResponse(url=f"/tasks/{task_id}?error={key}", status_code=303)


@app.post("/tasks/{task_id}/notes")
def note_create(
    task_id: int,
    note: str = Form(""),
    auth: AuthContext = Depends(require_user),
    _csrf: None = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        add_note(db, user_id=auth.user_id, task_id=task_id, text=note)
    except ValueError:
        return _note_error_redirect(task_id, "empty_note")
    return RedirectResponse(url=f"/tasks/{task_id}", status_code=303)


@app.post("/tasks/{task_id}/notes/{note_id}/edit")
def note_update(
    task_id: int,
    note_id: int,
    note: str = Form(""),
    auth: AuthContext = Depends(require_user),
    _csrf: None = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    try:
        update_note(db, user_id=auth.user_id, task_id=task_id, note_id=note_id, text=note)
    except ValueError:
        return _note_error_redirect(task_id, "empty_note")
    return RedirectResponse(url=f"/tasks/{task_id}", status_code=303)


@app.post("/tasks/{task_id}/notes/{note_id}/delete")
def note_delete(
    task_id: int,
    note_id: int,
    auth: AuthContext = Depends(require_user),
    _csrf: None = Depends(require_csrf),
    db: Session = Depends(get_db),
):
    delete_note(db, user_id=auth.user_id, task_id=task_id, note_id=note_id)
    return RedirectResponse(url=f"/tasks/{task_id}", status_code=303)
