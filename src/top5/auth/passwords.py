# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

_PH = PasswordHasher()

# Verified against when the username does not exist, so both failure paths
# spend one argon2 verification.
_DUMMY_HASH = _PH.hash("top5-dummy-password")


def hash_password(plain: str) -> str:
    if not plain:
        raise ValueError("Password must not be empty")
    return _PH.hash(plain)


def verify_password(hash_value: str, plain: str) -> bool:
    if not hash_value or not plain:
        return False
    try:
        return _PH.verify(hash_value, plain)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def burn_verification(plain: str) -> None:
    """Run a verification whose result is discarded."""
    verify_password(_DUMMY_HASH, plain or "-")
