"""
Webhook signature verification (HMAC-SHA256).

The signature must be computed over the exact raw request body as received;
a re-serialized body will not verify.
"""
import hashlib
import hmac
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

SIGNATURE_HEADER = "terra-signature"
PREVIEW_LENGTH = 120


@dataclass
class SignatureCheck:
    """Verification result. The preview is for diagnostics only."""
    valid: bool
    computed: Optional[str]
    payload_preview: Optional[str]

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "computed": self.computed,
            "payloadPreview": self.payload_preview,
        }


def get_header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup; list values yield their first item."""
    wanted = name.lower()
    for key, value in headers.items():
        if not isinstance(key, str) or key.lower() != wanted:
            continue
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        return value if isinstance(value, str) and value.strip() else None
    return None


def parse_signature_header(header_value: str) -> tuple[str, Optional[str]]:
    """
    Split a signature header into (signature, timestamp).

    Supports composite values such as `signature=...,timestamp=...` or
    `v1=...,t=...`; a bare value is the signature itself.
    """
    parts: dict[str, str] = {}
    for part in header_value.split(","):
        key, sep, value = part.partition("=")
        if sep and key.strip() and value.strip():
            parts[key.strip()] = value.strip()

    signature = parts.get("signature") or parts.get("v1") or header_value.strip()
    timestamp = parts.get("timestamp") or parts.get("t")
    return signature, timestamp


def verify_signature(
    headers: Mapping[str, Any],
    raw_body: Union[bytes, str],
    secret: str,
    header_name: str = SIGNATURE_HEADER,
) -> SignatureCheck:
    """
    Verify an HMAC-SHA256 webhook signature.

    Args:
        headers: Request headers (any case)
        raw_body: Exact, unparsed request body
        secret: Shared webhook secret
        header_name: Header carrying the signature

    Returns:
        SignatureCheck with the hex digest we computed (None when the header
        is missing) and a short preview of the signed payload
    """
    body = raw_body.encode("utf-8") if isinstance(raw_body, str) else bytes(raw_body)
    body_text = body.decode("utf-8", errors="replace")

    header_value = get_header(headers, header_name)
    if not header_value:
        return SignatureCheck(valid=False, computed=None, payload_preview=body_text[:PREVIEW_LENGTH])

    provided, timestamp = parse_signature_header(header_value)
    signed_payload = f"{timestamp}.".encode("utf-8") + body if timestamp else body
    preview = signed_payload.decode("utf-8", errors="replace")[:PREVIEW_LENGTH]

    computed = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()

    computed_bytes = computed.encode("utf-8")
    provided_bytes = provided.encode("utf-8")
    if len(computed_bytes) != len(provided_bytes):
        return SignatureCheck(valid=False, computed=computed, payload_preview=preview)

    return SignatureCheck(
        valid=hmac.compare_digest(computed_bytes, provided_bytes),
        computed=computed,
        payload_preview=preview,
    )
