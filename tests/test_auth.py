import time

import pytest

from chatmesh.auth import (
    AuthHandler,
    AuthorizationRequest,
    KeyPair,
    decode_user_claims,
)
from chatmesh.errors import ChatError


class MockVerifier:
    def __init__(self, username="", error=None):
        self.username = username
        self.error = error
        self.seen = []

    def verify(self, token):
        self.seen.append(token)
        if self.error is not None:
            raise self.error
        return self.username


def _issue(username="testuser"):
    account = KeyPair.create_account()
    user = KeyPair.create_user()
    handler = AuthHandler(MockVerifier(username=username), account)
    req = AuthorizationRequest(user_nkey=user.public_key(), token="token")
    return account, user, handler.handle(req)


def test_handle_integration_publish_permission():
    _account, _user, encoded = _issue()
    claims = decode_user_claims(encoded)
    assert "chat.user.testuser.>" in claims["nats"]["pub"]["allow"]


def test_claims_permissions_and_identity():
    account, user, encoded = _issue()
    claims = decode_user_claims(encoded)
    assert claims["nats"]["pub"]["allow"] == ["chat.user.testuser.>", "_INBOX.>"]
    assert claims["nats"]["sub"]["allow"] == [
        "chat.user.testuser.>",
        "chat.room.>",
        "_INBOX.>",
    ]
    assert claims["sub"] == user.public_key()
    assert claims["iss"] == account.public_key()
    assert claims["aud"] == "$G"


def test_claims_expire_in_two_hours():
    start = int(time.time())
    _a, _u, encoded = _issue()
    end = int(time.time())
    exp = decode_user_claims(encoded)["exp"]
    assert start + 7200 <= exp <= end + 7200


def test_missing_token_rejected():
    verifier = MockVerifier(username="testuser")
    handler = AuthHandler(verifier, KeyPair.create_account())
    with pytest.raises(ChatError, match="missing auth token"):
        handler.handle(AuthorizationRequest(user_nkey=KeyPair.create_user().public_key()))
    assert verifier.seen == []


def test_verifier_error_propagates():
    handler = AuthHandler(MockVerifier(error=ValueError("bad sso")), KeyPair.create_account())
    req = AuthorizationRequest(user_nkey=KeyPair.create_user().public_key(), token="token")
    with pytest.raises(ValueError, match="bad sso"):
        handler.handle(req)


def test_authorizer_issues_same_kind_of_token():
    account = KeyPair.create_account()
    handler = AuthHandler(MockVerifier(username="bob"), account)
    fn = handler.authorizer()
    token_text = fn(AuthorizationRequest(user_nkey=KeyPair.create_user().public_key(), token="token"))
    assert decode_user_claims(token_text)["nats"]["pub"]["allow"][0] == "chat.user.bob.>"


def test_user_key_cannot_sign_user_tokens():
    handler = AuthHandler(MockVerifier(username="bob"), KeyPair.create_user())
    req = AuthorizationRequest(user_nkey=KeyPair.create_user().public_key(), token="token")
    with pytest.raises(ChatError):
        handler.handle(req)


def test_tampered_token_rejected():
    _a, _u, encoded = _issue()
    header, payload, sig = encoded.split(".")
    _a2, _u2, other = _issue(username="mallory")
    forged = f"{header}.{other.split('.')[1]}.{sig}"
    with pytest.raises(ChatError):
        decode_user_claims(forged)


def test_malformed_token_rejected():
    with pytest.raises(ChatError):
        decode_user_claims("only.two")


def test_seed_round_trip_and_prefixes():
    account = KeyPair.create_account()
    user = KeyPair.create_user()
    assert account.seed.startswith("SA")
    assert user.seed.startswith("SU")
    assert account.public_key().startswith("A")
    assert user.public_key().startswith("U")
    assert KeyPair.from_seed(account.seed).public_key() == account.public_key()
    assert KeyPair.from_seed(user.seed.encode()).public_key() == user.public_key()


def test_from_seed_rejects_bad_checksum():
    seed = KeyPair.create_account().seed
    last = "A" if seed[-1] != "A" else "B"
    with pytest.raises(ChatError):
        KeyPair.from_seed(seed[:-1] + last)


def test_from_seed_rejects_public_key():
    with pytest.raises(ChatError):
        KeyPair.from_seed(KeyPair.create_account().public_key())


def test_sign_and_verify():
    kp = KeyPair.create_account()
    signature = kp.sign(b"hello")
    assert len(signature) == 64
    kp.verify(b"hello", signature)
    with pytest.raises(ChatError, match="invalid signature"):
        kp.verify(b"hellO", signature)
    with pytest.raises(ChatError, match="invalid signature"):
        KeyPair.create_account().verify(b"hello", signature)