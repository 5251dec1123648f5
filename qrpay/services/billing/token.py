"""Scannable bill token codec.

Token format: ``base64url(payload).base64url(signature)``

Payload is compact JSON ``{"v": 1, "b": bill_id, "m": merchant_id, "e":
expires_at_epoch}`` with ids as 32-char hex.  No merchant or payer text ever
goes into the token, and the whole token stays inside the URL-safe base64
alphabet plus ``.``.  The signature is a truncated HMAC-SHA256 so a
tampered or forged token decodes as malformed.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import re
import uuid
from dataclasses import dataclass

from qrpay.core.errors import MalformedToken

TOKEN_VERSION = 1
SIGNATURE_BYTES = 16

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class TokenPayload:
    bill_id: uuid.UUID
    merchant_id: uuid.UUID
    expires_at_epoch: int


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    padding = -len(data) % 4
    return base64.urlsafe_b64decode(data + "=" * padding)


def _sign(body: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()[
        :SIGNATURE_BYTES
    ]


def encode_token(payload: TokenPayload, secret: str) -> str:
    """Serialize and sign a bill reference."""
    body = json.dumps(
        {
            "v": TOKEN_VERSION,
            "b": payload.bill_id.hex,
            "m": payload.merchant_id.hex,
            "e": int(payload.expires_at_epoch),
        },
        separators=(",", ":"),
        sort_keys=True,
    ).encode("ascii")
    return f"{_b64encode(body)}.{_b64encode(_sign(body, secret))}"


def decode_token(token: str, secret: str) -> TokenPayload:
    """Verify and decode a scanned token.

    Raises:
        MalformedToken: On any encoding, signature, or schema problem.
    """
    if not isinstance(token, str) or not _TOKEN_RE.match(token.strip()):
        raise MalformedToken()

    body_part, sig_part = token.strip().split(".", 1)
    try:
        body = _b64decode(body_part)
        signature = _b64decode(sig_part)
    except ValueError:
        raise MalformedToken()

    if not hmac.compare_digest(signature, _sign(body, secret)):
        raise MalformedToken()

    try:
        data = json.loads(body.decode("ascii"))
        if data.get("v") != TOKEN_VERSION:
            raise MalformedToken()
        return TokenPayload(
            bill_id=uuid.UUID(hex=data["b"]),
            merchant_id=uuid.UUID(hex=data["m"]),
            expires_at_epoch=int(data["e"]),
        )
    except (ValueError, KeyError, TypeError, AttributeError, UnicodeDecodeError):
        raise MalformedToken()
