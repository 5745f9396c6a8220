#!/usr/bin/env python3
from __future__ import annotations

import argparse
from getpass import getpass
from pathlib import Path

import yaml

from top5.auth.passwords import hash_password
from top5.auth.users import CredentialStore
from top5.infra.db import init_db, new_session


def _write_yaml(path: Path, username: str, password_hash: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    else:
        raw = {"version": 1, "users": {}}

    if "users" not in raw or not isinstance(raw["users"], dict):
        raw["users"] = {}

    raw["users"][username] = {"password_hash": password_hash}
    path.write_text(yaml.safe_dump(raw, sort_keys=False, allow_unicode=True), encoding="utf-8")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a Top5 user.")
    parser.add_argument(
        "--yaml",
        type=Path,
        default=None,
        help="Append the user to a users.yml (for TOP5_USERS_PATH) instead of the database.",
    )
    args = parser.parse_args()

    username = input("Username: ").strip()
    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords do not match")

    if args.yaml:
        _write_yaml(args.yaml, username, hash_password(pw1))
        print(f"OK -> {args.yaml}")
        return

    init_db()
    with new_session() as db:
        try:
            user = CredentialStore(db).create_user(username, pw1)
        except ValueError as e:
            raise SystemExit(str(e))
    print(f"OK -> user id {user.id}")


if __name__ == "__main__":
    main()
