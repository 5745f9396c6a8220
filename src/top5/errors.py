# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Exception taxonomy shared by the auth gate, the stores and the web layer."""

from __future__ import annotations


class AuthError(Exception):
    """Base class for user-recoverable authentication failures."""


class InvalidCredentials(AuthError):
    """Wrong or missing username/password at sign-in."""


class EmptyCredentials(InvalidCredentials):
    """Sign-in submitted with a required field empty (rejected before lookup)."""


class Unauthenticated(AuthError):
    """Missing, invalid or expired session on a protected operation."""


class StoreUnavailable(RuntimeError):
    """The credential/session/task store could not be reached."""


class UserNotFound(LookupError):
    """A user id that must exist (e.g. referenced by a live session) does not."""


class TaskNotFound(LookupError):
    """Task or note absent, or not owned by the current user."""
