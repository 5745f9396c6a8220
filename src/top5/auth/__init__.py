# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Authentication helpers.

This package provides:
- Password hashing/verification (argon2)
- Credential store over the users table (+ YAML import)
- Server-side sessions referenced by signed cookies (itsdangerous)
- The AuthGate tying them together
"""
