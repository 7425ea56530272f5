import base64
import hashlib
import hmac

from core.config import settings


def _b64u_encode(data: bytes) -> str:
    """Base64-URL encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def sign_request(body: bytes, user_id: str, secret: str | None = None) -> str:
    """
    Sign a gateway->API request.

    The signature covers the caller id and the raw body, so a signed body
    cannot be replayed on behalf of another user.

    Args:
        body: Raw request body bytes (empty for GET)
        user_id: Caller user id sent in X-User-Id
        secret: HMAC secret, defaults to settings.internal_api_secret

    Returns:
        Base64-URL encoded HMAC-SHA256 signature
    """
    key = (secret if secret is not None else settings.internal_api_secret).encode()
    mac = hmac.new(key, user_id.encode() + b"\n" + body, hashlib.sha256).digest()
    return _b64u_encode(mac)


def verify_request_signature(body: bytes, user_id: str, signature: str) -> bool:
    """Verify a signature produced by :func:`sign_request`."""
    expected = sign_request(body, user_id)
    return hmac.compare_digest(expected, signature or "")
