# incomesplit/core/security.py
import hmac
import hashlib
import structlog
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = structlog.get_logger(__name__)


def _sign(payload: str, secret_key: str) -> str:
    return hmac.new(secret_key.encode(), payload.encode(), hashlib.sha256).hexdigest()


def create_session_token(
    user_id: uuid.UUID,
    secret_key: str,
    issued_at: Optional[datetime] = None
) -> str:
    """
    Выдает подписанный токен сессии после успешного входа через Google.

    Формат: "<user_id>.<issued_at_unix>.<hmac_sha256>".
    """
    issued_at = issued_at or datetime.now(tz=timezone.utc)
    payload = f"{user_id}.{int(issued_at.timestamp())}"
    return f"{payload}.{_sign(payload, secret_key)}"


def verify_session_token(
    token: str,
    secret_key: str,
    expiration_hours: int = 24 * 7
) -> Optional[uuid.UUID]:
    """
    Проверяет подпись и срок жизни токена.

    Returns:
        ID пользователя, если токен валиден, иначе None.
    """
    try:
        user_id_str, issued_at_str, received_signature = token.split(".")
        user_id = uuid.UUID(user_id_str)
        issued_at = datetime.fromtimestamp(int(issued_at_str), tz=timezone.utc)
    except (ValueError, TypeError):
        # Некорректный формат токена
        return None

    calculated_signature = _sign(f"{user_id_str}.{issued_at_str}", secret_key)
    if not hmac.compare_digest(calculated_signature, received_signature):
        logger.warning("session_token_signature_mismatch", user_id=str(user_id))
        return None

    if datetime.now(tz=timezone.utc) - issued_at > timedelta(hours=expiration_hours):
        logger.info("session_token_expired", user_id=str(user_id), issued_at=issued_at.isoformat())
        return None

    return user_id


def verify_gateway_key(received_key: Optional[str], expected_key: Optional[str]) -> bool:
    """
    Проверяет ключ сервиса входа, который передает проверенный профиль Google.
    """
    if not expected_key or not received_key:
        return False
    return hmac.compare_digest(received_key.encode(), expected_key.encode())
