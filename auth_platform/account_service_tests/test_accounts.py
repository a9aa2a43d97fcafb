"""Tests for the account use-cases, run against the SQLite directory."""
import logging
import os
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from auth_platform.account_service.accounts import AccountService
from auth_platform.account_service.auth import TokenService
from auth_platform.account_service.errors import Conflict, InvalidCredentials, InvalidToken, NotFound

TEST_SECRET = os.environ["SECRET_KEY"]


def signup(accounts, email="a@x.com", password="abc123", phone="11988887777", **kwargs):
    return accounts.signup(email=email, password=password, full_name="Ana Xavier", phone=phone, **kwargs)


def test_signup_returns_auth_response(accounts, tokens):
    response = signup(accounts)
    user = response["user"]
    assert set(user) == {"id", "email", "fullName", "role", "phone", "textToSpeech"}
    assert user["email"] == "a@x.com"
    assert user["fullName"] == "Ana Xavier"
    assert user["role"] == "USER,DRIVER"
    assert user["textToSpeech"] is False
    assert tokens.verify_session(response["token"]) == user["id"]


def test_signup_stores_hash_not_plaintext(accounts, directory, hasher):
    signup(accounts)
    stored = directory.find_by_unique_field("email", "a@x.com")
    assert stored.password != "abc123"
    assert hasher.verify("abc123", stored.password)


def test_signup_with_address(accounts, directory):
    response = signup(accounts, address={"street": "Rua das Flores", "city": "Curitiba", "uf": "PR", "number": "42"})
    stored = directory.find_by_id(response["user"]["id"])
    assert stored.address.street == "Rua das Flores"
    assert stored.address.number == "42"


def test_signup_duplicate_email_conflicts(accounts):
    signup(accounts)
    with pytest.raises(Conflict):
        signup(accounts, phone="11900000000")


def test_signup_duplicate_phone_conflicts(accounts):
    signup(accounts)
    with pytest.raises(Conflict):
        signup(accounts, email="b@x.com")


def test_signup_uses_configured_role(directory, hasher, tokens, notifier):
    service = AccountService(directory, hasher, tokens, notifier, default_role="USER")
    assert signup(service)["user"]["role"] == "USER"


def test_login_after_signup(accounts, tokens):
    created = signup(accounts)
    response = accounts.login("a@x.com", "abc123")
    assert response["user"] == created["user"]
    assert tokens.verify_session(response["token"]) == created["user"]["id"]


def test_login_wrong_password_is_invalid_credentials(accounts, caplog):
    signup(accounts)
    with caplog.at_level(logging.WARNING):
        with pytest.raises(InvalidCredentials):
            accounts.login("a@x.com", "wrong123")
    assert any("login_failure" in record.getMessage() for record in caplog.records)
    assert all(record.levelno == logging.WARNING for record in caplog.records if "login_failure" in record.getMessage())


def test_login_unknown_email_is_invalid_credentials(accounts):
    with pytest.raises(InvalidCredentials) as unknown:
        accounts.login("nobody@x.com", "abc123")
    signup(accounts)
    with pytest.raises(InvalidCredentials) as wrong:
        accounts.login("a@x.com", "wrong123")
    # same message whichever field was wrong
    assert str(unknown.value) == str(wrong.value)


def test_login_without_local_password_is_invalid_credentials(accounts, directory):
    directory.create(email="fb@x.com", full_name="External", role="USER", password=None)
    for attempt in ("", "abc123", "None"):
        with pytest.raises(InvalidCredentials):
            accounts.login("fb@x.com", attempt)


def test_login_disabled_account_is_invalid_credentials(accounts, directory):
    created = signup(accounts)
    directory.update(created["user"]["id"], enabled=False)
    with pytest.raises(InvalidCredentials):
        accounts.login("a@x.com", "abc123")


def test_refresh_issues_new_token(accounts, tokens):
    created = signup(accounts)
    response = accounts.refresh(created["user"]["id"])
    assert response["user"] == created["user"]
    assert tokens.verify_session(response["token"]) == created["user"]["id"]


def test_refresh_unknown_user_is_not_found(accounts):
    with pytest.raises(NotFound):
        accounts.refresh(999)


def test_change_password_with_correct_current_password(accounts, directory, hasher):
    user_id = signup(accounts)["user"]["id"]
    updated = accounts.change_password(user_id, "Ana Maria Xavier", "abc123", "new456")
    assert updated.full_name == "Ana Maria Xavier"
    stored = directory.find_by_id(user_id)
    assert hasher.verify("new456", stored.password)
    assert not hasher.verify("abc123", stored.password)


def test_change_password_with_wrong_current_password(accounts, directory):
    user_id = signup(accounts)["user"]["id"]
    before = directory.find_by_id(user_id).password
    with pytest.raises(InvalidCredentials):
        accounts.change_password(user_id, "Someone Else", "wrong123", "new456")
    after = directory.find_by_id(user_id)
    assert after.password == before
    assert after.full_name == "Ana Xavier"


def test_change_name_only(accounts, directory):
    user_id = signup(accounts)["user"]["id"]
    before = directory.find_by_id(user_id).password
    accounts.change_password(user_id, "Ana Renamed", None, None)
    after = directory.find_by_id(user_id)
    assert after.full_name == "Ana Renamed"
    assert after.password == before


def test_change_password_needs_both_passwords(accounts, directory):
    user_id = signup(accounts)["user"]["id"]
    before = directory.find_by_id(user_id).password
    accounts.change_password(user_id, "Ana Renamed", None, "new456")
    assert directory.find_by_id(user_id).password == before


def test_change_password_unknown_user_is_not_found(accounts):
    with pytest.raises(NotFound):
        accounts.change_password(999, "Nobody Here", "abc123", "new456")


def test_change_password_keeps_creation(accounts, directory):
    user_id = signup(accounts)["user"]["id"]
    created_at = directory.find_by_id(user_id).creation
    accounts.change_password(user_id, "Ana Renamed", "abc123", "new456")
    assert directory.find_by_id(user_id).creation == created_at


# ---------------- Password reset ----------------

def test_request_reset_for_unknown_email_is_silent(accounts, notifier):
    assert accounts.request_password_reset("nobody@x.com") is None
    assert notifier.sent == []


def test_request_reset_for_user_without_local_password_is_silent(accounts, directory, notifier):
    directory.create(email="fb@x.com", full_name="External", role="USER", password=None)
    accounts.request_password_reset("fb@x.com")
    assert notifier.sent == []


def test_request_reset_sends_token_bound_to_current_hash(accounts, directory, tokens, notifier):
    user_id = signup(accounts)["user"]["id"]
    accounts.request_password_reset("a@x.com")
    assert len(notifier.sent) == 1
    sent = notifier.sent[0]
    assert sent["to_email"] == "a@x.com"
    assert sent["to_name"] == "Ana Xavier"
    current_hash = directory.find_by_id(user_id).password
    assert tokens.verify_reset_token(sent["token"], current_hash) == user_id


def test_reset_password_with_valid_token(accounts, notifier):
    signup(accounts)
    accounts.request_password_reset("a@x.com")
    accounts.reset_password(notifier.sent[0]["token"], "fresh789")
    assert accounts.login("a@x.com", "fresh789")["token"]
    with pytest.raises(InvalidCredentials):
        accounts.login("a@x.com", "abc123")


def test_reset_token_is_single_use(accounts, notifier):
    signup(accounts)
    accounts.request_password_reset("a@x.com")
    token = notifier.sent[0]["token"]
    accounts.reset_password(token, "fresh789")
    with pytest.raises(InvalidToken):
        accounts.reset_password(token, "again000")


def test_reset_invalidates_other_outstanding_tokens(accounts, notifier):
    signup(accounts)
    accounts.request_password_reset("a@x.com")
    accounts.request_password_reset("a@x.com")
    first, second = (sent["token"] for sent in notifier.sent)
    accounts.reset_password(second, "fresh789")
    with pytest.raises(InvalidToken):
        accounts.reset_password(first, "again000")


def test_reset_with_token_signed_under_stale_hash(accounts, notifier):
    user_id = signup(accounts)["user"]["id"]
    accounts.request_password_reset("a@x.com")
    token = notifier.sent[0]["token"]
    accounts.change_password(user_id, "Ana Xavier", "abc123", "changed1")
    with pytest.raises(InvalidToken):
        accounts.reset_password(token, "fresh789")
    assert accounts.login("a@x.com", "changed1")["token"]


def test_reset_with_expired_token(directory, hasher, tokens, notifier):
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    issuing = TokenService(secret_key=TEST_SECRET, session_ttl=timedelta(hours=1), clock=lambda: past)
    service = AccountService(directory, hasher, issuing, notifier)
    signup(service)
    service.request_password_reset("a@x.com")
    token = notifier.sent[0]["token"]

    current = AccountService(directory, hasher, tokens, notifier)
    with pytest.raises(InvalidToken):
        current.reset_password(token, "fresh789")


@pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c"])
def test_reset_with_malformed_token(accounts, token):
    with pytest.raises(InvalidToken):
        accounts.reset_password(token, "fresh789")


@pytest.mark.parametrize("subject", ["9" * 30, "0", "-1", str(2**63)])
def test_reset_with_out_of_range_subject(accounts, subject):
    token = jwt.encode({"sub": subject}, "an-attacker-chosen-signing-key-0123456789", algorithm="HS256")
    with pytest.raises(InvalidToken):
        accounts.reset_password(token, "fresh789")


def test_reset_with_token_for_unknown_user(accounts, tokens, hasher):
    token = tokens.issue_reset_token(404, hasher.hash("abc123"))
    with pytest.raises(InvalidToken):
        accounts.reset_password(token, "fresh789")


def test_reset_with_forged_token(accounts, tokens):
    user_id = signup(accounts)["user"]["id"]
    forged = tokens.issue_reset_token(user_id, "$2b$08$guessedguessedguessedguessedguessedguessedguessedgue")
    with pytest.raises(InvalidToken):
        accounts.reset_password(forged, "fresh789")


def test_reset_for_user_without_local_password(accounts, directory, tokens):
    user = directory.create(email="fb@x.com", full_name="External", role="USER", password=None)
    token = tokens.issue_reset_token(user.id, "any-previous-hash-value")
    with pytest.raises(InvalidToken):
        accounts.reset_password(token, "fresh789")
