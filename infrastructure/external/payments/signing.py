"""
RSA signing helpers for form-field gateways.

The provider expects a raw RSA private-key operation with PKCS#1 v1.5 type-1
padding over the canonical string (what OpenSSL calls "private encrypt"),
base64-encoded. ``cryptography`` exposes no such primitive, so the padding is
built here and the modular exponentiation done with the key's private
numbers. The result is deterministic, which is what callback verification
relies on.
"""
from __future__ import annotations

import base64
import hmac
import re
from typing import Any, Iterable, Mapping
from urllib.parse import quote

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from domain.common.exceptions import PaymentConfigurationError


PKCS1_TYPE1_OVERHEAD = 11

_PEM_RE = re.compile(r"-----BEGIN ([A-Z ]+)-----(.*?)-----END \1-----", re.S)


class PayloadTooLongError(ValueError):
    """Canonical string does not fit in one RSA block for this key."""


def canonical_string(params: Mapping[str, Any], order: Iterable[str]) -> str:
    """``k=v`` pairs in a fixed order, RFC3986-encoded, missing values empty."""
    parts = []
    for key in order:
        value = params.get(key)
        value = "" if value is None else str(value)
        parts.append(f"{quote(key, safe='')}={quote(value, safe='')}")
    return "&".join(parts)


def _reflow(body: str) -> str:
    compact = "".join(body.split())
    return "\n".join(compact[i:i + 64] for i in range(0, len(compact), 64))


def normalize_pem(raw: str) -> list[bytes]:
    """Candidate PEM encodings for a configured private key.

    Handles escaped newlines, keys pasted without PEM framing and bodies that
    were not wrapped at 64 columns.
    """
    text = (raw or "").strip()
    text = text.replace("\\r\\n", "\n").replace("\\n", "\n").replace("\\r", "\n").replace("\r\n", "\n")
    m = _PEM_RE.search(text)
    if m:
        label, body = m.group(1).strip(), m.group(2)
        labels = [label]
    else:
        body = text
        labels = ["PRIVATE KEY", "RSA PRIVATE KEY"]
    flowed = _reflow(body)
    return [f"-----BEGIN {lbl}-----\n{flowed}\n-----END {lbl}-----\n".encode("ascii", "ignore") for lbl in labels]


def load_private_key(raw: str, *, method: str | None = None) -> RSAPrivateKey:
    """Parse a PKCS#8 or PKCS#1 RSA private key; never returns None."""
    if not raw or not str(raw).strip():
        raise PaymentConfigurationError("Private key is not configured", method=method, field="private_key")
    for pem in normalize_pem(str(raw)):
        try:
            key = serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError):
            continue
        if isinstance(key, RSAPrivateKey):
            return key
    raise PaymentConfigurationError("Private key could not be parsed", method=method, field="private_key")


def private_encrypt(data: bytes, key: RSAPrivateKey) -> bytes:
    k = (key.key_size + 7) // 8
    if len(data) > k - PKCS1_TYPE1_OVERHEAD:
        raise PayloadTooLongError(f"payload of {len(data)} bytes exceeds {k - PKCS1_TYPE1_OVERHEAD}")
    em = b"\x00\x01" + b"\xff" * (k - 3 - len(data)) + b"\x00" + data
    numbers = key.private_numbers()
    n = numbers.public_numbers.n
    s = pow(int.from_bytes(em, "big"), numbers.d, n)
    return s.to_bytes(k, "big")


def sign(content: str, key: RSAPrivateKey) -> str:
    return base64.b64encode(private_encrypt(content.encode("utf-8"), key)).decode("ascii")


def signatures_match(expected: str, received: str) -> bool:
    return hmac.compare_digest(expected.encode("ascii"), (received or "").encode("utf-8"))
