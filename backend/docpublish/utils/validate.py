"""
DocPublish — Webhook payload validation.

GitHub signs every delivery with HMAC-SHA256 over the raw body and sends
it as ``X-Hub-Signature-256: sha256=<hex>``.
"""

import hashlib
import hmac

from docpublish.errors import WebhookSignatureError

SIGNATURE_PREFIX = "sha256="


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_github_signature(secret: str, body: bytes, signature_header: str | None) -> None:
    """
    Raise WebhookSignatureError unless the header matches the body.
    No-op when no secret is configured.
    """
    if not secret:
        return
    if not signature_header:
        raise WebhookSignatureError("missing X-Hub-Signature-256 header")
    if not signature_header.startswith(SIGNATURE_PREFIX):
        raise WebhookSignatureError("unsupported signature scheme")
    if not hmac.compare_digest(sign_payload(secret, body), signature_header):
        raise WebhookSignatureError("signature mismatch")
