"""Payment-provider webhook signatures.

Header format is ``ts=<unix seconds>;h1=<hex digest>``. The digest is
HMAC-SHA256 over ``"<ts>:<raw body>"`` keyed with the notification secret.
Several ``h1`` values may be present while the provider rotates secrets.
"""

from __future__ import annotations

import hashlib
import hmac

from nudge_ledger.economy.webhooks.errors import WebhookSignatureError


def compute_signature(*, secret: str, timestamp: str, body: bytes) -> str:
    signed_payload = timestamp.encode("utf-8") + b":" + body
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def build_signature_header(*, secret: str, timestamp: int, body: bytes) -> str:
    digest = compute_signature(secret=secret, timestamp=str(timestamp), body=body)
    return f"ts={timestamp};h1={digest}"


def parse_signature_header(header: str) -> tuple[str, list[str]]:
    timestamp: str | None = None
    digests: list[str] = []
    for part in header.split(";"):
        key, separator, value = part.strip().partition("=")
        if not separator or not value:
            continue
        if key == "ts":
            timestamp = value
        elif key == "h1":
            digests.append(value)

    if timestamp is None or not timestamp.isdigit() or not digests:
        raise WebhookSignatureError("malformed signature header")
    return timestamp, digests


def verify_signature(
    *,
    secret: str,
    body: bytes,
    header: str | None,
    now_unix: int,
    tolerance_seconds: int,
) -> None:
    if not secret:
        raise WebhookSignatureError("webhook secret is not configured")
    if not header:
        raise WebhookSignatureError("missing signature header")

    timestamp, digests = parse_signature_header(header)
    if tolerance_seconds > 0 and abs(now_unix - int(timestamp)) > tolerance_seconds:
        raise WebhookSignatureError("signature timestamp outside tolerance")

    expected = compute_signature(secret=secret, timestamp=timestamp, body=body)
    if not any(hmac.compare_digest(expected, digest) for digest in digests):
        raise WebhookSignatureError("signature mismatch")
