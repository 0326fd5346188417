# guru_sync/common/errors.py
from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Erro base do serviço: carrega código estável, causa e dados de diagnóstico."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: str = "APP_ERROR",
        cause: BaseException | None = None,
        retryable: bool = False,
        data: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.cause = cause
        self.retryable = retryable
        self.data: dict[str, Any] = dict(data or {})
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "status": self.status_code}


class UserError(AppError):
    """Entrada inválida vinda do chamador (4xx)."""

    status_code = 400


class MalformedInput(UserError):
    """Corpo da requisição não é um objeto JSON válido."""

    def __init__(self, message: str = "Invalid JSON body", **kwargs: Any) -> None:
        kwargs.setdefault("code", "BAD_JSON")
        super().__init__(message, **kwargs)


class Unauthorized(UserError):
    status_code = 401

    def __init__(self, message: str = "invalid token", **kwargs: Any) -> None:
        kwargs.setdefault("code", "INVALID_TOKEN")
        super().__init__(message, **kwargs)


class ConfigError(AppError):
    """Configuração ausente ou inválida (ex.: campo de assinatura não configurado)."""

    status_code = 500


class ExternalError(AppError):
    """Falha ao chamar um sistema externo (Pipedrive, Klaviyo)."""

    status_code = 502


class ContactCreateFailed(ExternalError):
    def __init__(self, message: str = "Falha ao criar pessoa", **kwargs: Any) -> None:
        kwargs.setdefault("code", "PERSON_CREATE_FAILED")
        super().__init__(message, **kwargs)


__all__ = [
    "AppError",
    "ConfigError",
    "ContactCreateFailed",
    "ExternalError",
    "MalformedInput",
    "Unauthorized",
    "UserError",
]
