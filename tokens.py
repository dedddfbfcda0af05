import secrets
import string
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="session-token")


def generate_session_token(user_id: int, email: str) -> str:
    serializer = _serializer()
    return serializer.dumps({"userId": user_id, "email": email})


def read_session_token(token: str, max_age_days: Optional[int] = None) -> Optional[dict]:
    """Return the token payload, or None when it is tampered, malformed or expired.

    SignatureExpired is a BadSignature subclass, so expiry is covered too.
    """
    if max_age_days is None:
        max_age_days = get_settings().session_ttl_days
    serializer = _serializer()
    try:
        data = serializer.loads(token, max_age=max_age_days * 86400)
    except BadSignature:
        return None

    if not isinstance(data, dict) or not isinstance(data.get("userId"), int):
        return None
    return data


def generate_reset_code() -> str:
    return f"{secrets.randbelow(900_000) + 100_000}"


def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)


_VERIFICATION_ALPHABET = string.ascii_letters + string.digits


def generate_verification_token(length: int = 48) -> str:
    return "".join(secrets.choice(_VERIFICATION_ALPHABET) for _ in range(length))
