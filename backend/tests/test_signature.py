"""
Tests for webhook HMAC signature verification.
"""
import hashlib
import hmac
import json

from trainload.services.ingest.signature import (
    PREVIEW_LENGTH,
    get_header,
    parse_signature_header,
    verify_signature,
)

SECRET = "test_secret"
BODY = json.dumps({"hello": "world"}).encode("utf-8")


def _sign(payload: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class TestVerifySignature:

    def test_valid_signature(self):
        signature = _sign(BODY)
        result = verify_signature({"terra-signature": signature}, BODY, SECRET)

        assert result.valid is True
        assert result.computed == signature

    def test_string_body(self):
        signature = _sign(BODY)
        assert verify_signature({"terra-signature": signature}, BODY.decode(), SECRET).valid

    def test_garbage_signature(self):
        result = verify_signature({"terra-signature": "not-valid"}, b"{}", "another_secret")

        assert result.valid is False
        assert len(result.computed) == 64

    def test_wrong_secret(self):
        signature = _sign(BODY, "other")
        assert verify_signature({"terra-signature": signature}, BODY, SECRET).valid is False

    def test_modified_body(self):
        signature = _sign(BODY)
        tampered = json.dumps({"hello": "world!"}).encode("utf-8")
        assert verify_signature({"terra-signature": signature}, tampered, SECRET).valid is False

    def test_reserialized_body_fails(self):
        signature = _sign(b'{"hello":"world"}')
        reserialized = json.dumps(json.loads(b'{"hello":"world"}')).encode("utf-8")
        assert verify_signature({"terra-signature": signature}, reserialized, SECRET).valid is False

    def test_header_lookup_is_case_insensitive(self):
        signature = _sign(BODY)
        assert verify_signature({"Terra-Signature": signature}, BODY, SECRET).valid

    def test_missing_header(self):
        result = verify_signature({"content-type": "application/json"}, BODY, SECRET)

        assert result.valid is False
        assert result.computed is None
        assert result.payload_preview == BODY.decode()

    def test_composite_header_with_timestamp(self):
        timestamp = "1700000000"
        signature = _sign(f"{timestamp}.".encode("utf-8") + BODY)

        header = f"t={timestamp},v1={signature}"
        result = verify_signature({"terra-signature": header}, BODY, SECRET)
        assert result.valid
        assert result.payload_preview.startswith(f"{timestamp}.")

        header = f"signature={signature},timestamp={timestamp}"
        assert verify_signature({"terra-signature": header}, BODY, SECRET).valid

    def test_composite_header_without_timestamp_prefix_fails(self):
        timestamp = "1700000000"
        header = f"t={timestamp},v1={_sign(BODY)}"
        assert verify_signature({"terra-signature": header}, BODY, SECRET).valid is False

    def test_preview_is_truncated(self):
        body = json.dumps({"data": "x" * 500}).encode("utf-8")
        result = verify_signature({"terra-signature": "bad"}, body, SECRET)

        assert len(result.payload_preview) == PREVIEW_LENGTH

    def test_to_dict(self):
        data = verify_signature({}, BODY, SECRET).to_dict()
        assert data == {"valid": False, "computed": None, "payloadPreview": BODY.decode()}


class TestHeaderHelpers:

    def test_get_header_list_value(self):
        assert get_header({"Terra-Signature": ["abc", "def"]}, "terra-signature") == "abc"

    def test_get_header_bytes_value(self):
        assert get_header({"terra-signature": b"abc"}, "terra-signature") == "abc"

    def test_get_header_blank(self):
        assert get_header({"terra-signature": "  "}, "terra-signature") is None

    def test_parse_bare_signature(self):
        assert parse_signature_header("abc123") == ("abc123", None)

    def test_parse_composite(self):
        assert parse_signature_header("t=42, v1=abc") == ("abc", "42")
