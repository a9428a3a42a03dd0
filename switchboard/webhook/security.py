import hashlib
import hmac
import time


def validate_signature(payload: bytes, signature_header: str, app_secret: str) -> bool:
    """Validate the X-Hub-Signature-256 header from Meta webhooks."""
    if not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode(), payload, hashlib.sha256).hexdigest()
    received = signature_header.removeprefix("sha256=")
    return hmac.compare_digest(expected, received)


def validate_timestamped_signature(
    payload: bytes, timestamp: str | None, signature: str | None, secret: str
) -> bool:
    """Validate the messaging provider's X-Signature: hex HMAC-SHA256 of timestamp + body."""
    if not timestamp or not signature or not secret:
        return False
    expected = hmac.new(secret.encode(), timestamp.encode() + payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def is_timestamp_fresh(timestamp: str | None, max_age_seconds: int = 300) -> bool:
    """Reject requests older than max_age_seconds (or too far in the future)."""
    if not timestamp:
        return False
    try:
        request_time = int(timestamp)
    except ValueError:
        return False
    return abs(int(time.time()) - request_time) <= max_age_seconds
