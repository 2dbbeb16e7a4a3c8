"""Auth service: verifies connection tokens and issues scoped user credentials."""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import nacl.exceptions
import nacl.signing
import nacl.utils

from .errors import ChatError

PREFIX_SEED = 18 << 3
PREFIX_OPERATOR = 14 << 3
PREFIX_SERVER = 13 << 3
PREFIX_CLUSTER = 2 << 3
PREFIX_ACCOUNT = 0
PREFIX_USER = 20 << 3

_PUBLIC_PREFIXES = frozenset(
    {PREFIX_OPERATOR, PREFIX_SERVER, PREFIX_CLUSTER, PREFIX_ACCOUNT, PREFIX_USER}
)

TOKEN_LIFETIME = 2 * 60 * 60
AUDIENCE = "$G"
_ALGORITHM = "ed25519-nkey"


def _crc(data: bytes) -> bytes:
    return binascii.crc_hqx(data, 0).to_bytes(2, "little")


def _b32encode(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=")


def _b32decode(text: str | bytes) -> bytes:
    if isinstance(text, bytes):
        text = text.decode("ascii")
    text = text.strip()
    try:
        return base64.b32decode(text + "=" * (-len(text) % 8))
    except (binascii.Error, ValueError) as exc:
        raise ChatError(f"invalid encoding: {exc}") from exc


def _checked(text: str | bytes) -> bytes:
    raw = _b32decode(text)
    if len(raw) < 3:
        raise ChatError("invalid encoding: too short")
    body, crc = raw[:-2], raw[-2:]
    if _crc(body) != crc:
        raise ChatError("invalid checksum")
    return body


def _decode_public(text: str) -> tuple[int, bytes]:
    body = _checked(text)
    if len(body) != 33 or body[0] not in _PUBLIC_PREFIXES:
        raise ChatError(f"invalid public key: {text}")
    return body[0], body[1:]


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(text: str) -> bytes:
    try:
        return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError) as exc:
        raise ChatError(f"invalid token encoding: {exc}") from exc


class KeyPair:
    """An ed25519 key pair with a typed, checksummed text encoding."""

    def __init__(self, prefix: int, signing_key: nacl.signing.SigningKey) -> None:
        if prefix not in _PUBLIC_PREFIXES:
            raise ChatError(f"invalid key prefix: {prefix}")
        self.prefix = prefix
        self._signing_key = signing_key
        raw_seed = bytes(signing_key)
        head = bytes([PREFIX_SEED | (prefix >> 5), (prefix & 31) << 3])
        self.seed = _b32encode(head + raw_seed + _crc(head + raw_seed))

    @classmethod
    def from_seed(cls, seed: str | bytes) -> KeyPair:
        """Rebuild a key pair from its encoded seed."""
        body = _checked(seed)
        if len(body) != 34:
            raise ChatError("invalid seed length")
        b1, b2 = body[0], body[1]
        if b1 & 248 != PREFIX_SEED:
            raise ChatError("invalid seed prefix")
        prefix = ((b1 & 7) << 5) | ((b2 & 248) >> 3)
        if prefix not in _PUBLIC_PREFIXES:
            raise ChatError("invalid seed key type")
        return cls(prefix, nacl.signing.SigningKey(body[2:]))

    @classmethod
    def _create(cls, prefix: int) -> KeyPair:
        return cls(prefix, nacl.signing.SigningKey(nacl.utils.random(32)))

    @classmethod
    def create_account(cls) -> KeyPair:
        return cls._create(PREFIX_ACCOUNT)

    @classmethod
    def create_user(cls) -> KeyPair:
        return cls._create(PREFIX_USER)

    def public_key(self) -> str:
        body = bytes([self.prefix]) + bytes(self._signing_key.verify_key)
        return _b32encode(body + _crc(body))

    def sign(self, data: bytes) -> bytes:
        return self._signing_key.sign(data).signature

    def verify(self, data: bytes, signature: bytes) -> None:
        """Raise ChatError unless ``signature`` is this key's signature of ``data``."""
        _verify_with(bytes(self._signing_key.verify_key), data, signature)


def _verify_with(raw_public: bytes, data: bytes, signature: bytes) -> None:
    try:
        nacl.signing.VerifyKey(raw_public).verify(data, signature)
    except (nacl.exceptions.BadSignatureError, ValueError) as exc:
        raise ChatError("invalid signature") from exc


class TokenVerifier(Protocol):
    """Verifies a single sign-on token and returns the username it belongs to."""

    def verify(self, token: str) -> str: ...


@dataclass
class AuthorizationRequest:
    """A connecting client's public user key and the token it presented."""

    user_nkey: str
    token: str = ""


def _encode_claims(claims: dict[str, Any], key: KeyPair) -> str:
    body = dict(claims, jti="")
    digest = hashlib.sha256(json.dumps(body, separators=(",", ":")).encode("utf-8")).digest()
    claims = dict(claims, jti=_b32encode(digest))
    header = _b64url(json.dumps({"typ": "JWT", "alg": _ALGORITHM}, separators=(",", ":")).encode())
    payload = _b64url(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header}.{payload}".encode("ascii")
    return f"{header}.{payload}.{_b64url(key.sign(signing_input))}"


def decode_user_claims(token: str) -> dict[str, Any]:
    """Decode a signed user token, checking its signature against its issuer."""
    parts = token.split(".")
    if len(parts) != 3:
        raise ChatError("expected a token of three parts")
    try:
        header = json.loads(_b64url_decode(parts[0]))
        claims = json.loads(_b64url_decode(parts[1]))
    except json.JSONDecodeError as exc:
        raise ChatError(f"invalid token: {exc}") from exc
    if not isinstance(header, dict) or header.get("alg") != _ALGORITHM:
        raise ChatError("unsupported token algorithm")
    if not isinstance(claims, dict):
        raise ChatError("invalid token claims")
    issuer = claims.get("iss")
    if not isinstance(issuer, str):
        raise ChatError("token has no issuer")
    _prefix, raw_public = _decode_public(issuer)
    signing_input = f"{parts[0]}.{parts[1]}".encode("ascii")
    _verify_with(raw_public, signing_input, _b64url_decode(parts[2]))
    nats = claims.get("nats")
    if not isinstance(nats, dict) or nats.get("type") != "user":
        raise ChatError("not a user token")
    return claims


class AuthHandler:
    """Turns authorization requests into signed, scoped user tokens."""

    def __init__(self, verifier: TokenVerifier, signing_key: KeyPair) -> None:
        self.verifier = verifier
        self.signing_key = signing_key

    def handle(self, req: AuthorizationRequest) -> str:
        """Verify the request's token and return a signed user token for it."""
        if not req.token:
            raise ChatError("missing auth token")
        username = self.verifier.verify(req.token)

        if self.signing_key.prefix not in (PREFIX_ACCOUNT, PREFIX_OPERATOR):
            raise ChatError("signing key must be an account key")

        own = f"chat.user.{username}.>"
        now = int(time.time())
        claims = {
            "jti": "",
            "iat": now,
            "iss": self.signing_key.public_key(),
            "name": req.user_nkey,
            "sub": req.user_nkey,
            "aud": AUDIENCE,
            "exp": now + TOKEN_LIFETIME,
            "nats": {
                "pub": {"allow": [own, "_INBOX.>"]},
                "sub": {"allow": [own, "chat.room.>", "_INBOX.>"]},
                "subs": -1,
                "data": -1,
                "payload": -1,
                "type": "user",
                "version": 2,
            },
        }
        return _encode_claims(claims, self.signing_key)

    def authorizer(self) -> Callable[[AuthorizationRequest], str]:
        """Return the request handler as a plain callable."""
        return self.handle