# incomesplit/core/exceptions.py
from fastapi import status


class DomainError(Exception):
    """Базовая ошибка бизнес-логики. Эндпоинты превращают ее в HTTPException."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError, ValueError):
    # Наследуем от ValueError, чтобы валидаторы Pydantic могли бросать ее напрямую
    status_code = status.HTTP_400_BAD_REQUEST


class CastError(DomainError):
    """Идентификатор или значение не удалось привести к нужному типу."""
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
