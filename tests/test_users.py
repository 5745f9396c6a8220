import pytest
import yaml

from top5.auth.passwords import hash_password, verify_password
from top5.auth.users import CredentialStore
from top5.errors import UserNotFound


def test_create_user_stores_hash_not_plaintext(db):
    user = CredentialStore(db).create_user("alice", "secret123")
    assert user.id is not None
    assert user.password_hash != "secret123"
    assert verify_password(user.password_hash, "secret123")
    assert "password_hash" not in repr(user)


def test_find_by_username_and_id(db, alice):
    store = CredentialStore(db)
    assert store.find_user_by_username("alice").id == alice.id
    assert store.find_user_by_username(" alice ").id == alice.id
    assert store.find_user_by_username("bob") is None
    assert store.find_user_by_username("") is None
    assert store.find_user_by_id(alice.id).username == "alice"


def test_find_by_missing_id_is_loud(db):
    with pytest.raises(UserNotFound):
        CredentialStore(db).find_user_by_id(424242)


def test_username_must_be_unique(db, alice):
    with pytest.raises(ValueError, match="already taken"):
        CredentialStore(db).create_user("alice", "other")


@pytest.mark.parametrize("username,password", [("", "x"), ("   ", "x"), ("bob", ""), ("b" * 151, "x")])
def test_create_user_rejects_bad_input(db, username, password):
    with pytest.raises(ValueError):
        CredentialStore(db).create_user(username, password)


def test_import_users_file(db, alice, tmp_path):
    path = tmp_path / "users.yml"
    path.write_text(
        yaml.safe_dump(
            {
                "version": 1,
                "users": {
                    "carol": {"password_hash": hash_password("carolpw")},
                    "alice": {"password_hash": hash_password("replaced")},
                    "nohash": {},
                    "broken": "not-a-mapping",
                },
            }
        ),
        encoding="utf-8",
    )
    store = CredentialStore(db)
    assert store.import_users_file(path) == 1
    assert verify_password(store.find_user_by_username("carol").password_hash, "carolpw")
    # existing users keep their password
    assert verify_password(store.find_user_by_username("alice").password_hash, "secret123")
    assert store.import_users_file(path) == 0


def test_import_missing_file(db, tmp_path):
    assert CredentialStore(db).import_users_file(tmp_path / "nope.yml") == 0
