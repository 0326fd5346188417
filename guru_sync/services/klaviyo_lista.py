# guru_sync/services/klaviyo_lista.py
"""
Inscrição/desinscrição na lista do Klaviyo.

Cada operação tenta a chamada primária e, se falhar (status não-2xx ou erro de rede),
uma chamada alternativa com outro formato de requisição para a mesma operação lógica.
Nunca levanta exceção: o resultado sempre volta como `ResultadoLista`.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal, Protocol

from guru_sync.common.errors import AppError
from guru_sync.common.http_client import truncar
from guru_sync.common.logging_setup import get_logger
from guru_sync.common.settings import ConfigSync
from guru_sync.schemas.guru_webhook import ResultadoLista

logger = get_logger(__name__)


class KlaviyoAPI(Protocol):
    def inscrever_em_massa(self, list_id: str, email: str, telefone_e164: str | None = None) -> tuple[int, Any]: ...

    def importar_perfil(self, email: str, telefone_e164: str | None = None) -> tuple[int, Any]: ...

    def adicionar_perfis_na_lista(self, list_id: str, profile_ids: list[str]) -> tuple[int, Any]: ...

    def desinscrever_em_massa(self, list_id: str, email: str) -> tuple[int, Any]: ...

    def buscar_perfil_por_email(self, email: str) -> str | None: ...

    def remover_perfis_da_lista(self, list_id: str, profile_ids: list[str]) -> tuple[int, Any]: ...


Acao = Literal["subscribe", "unsubscribe"]


def _motivo_config_ausente(config: ConfigSync, email: str) -> str | None:
    if not config.klaviyo_api_key:
        return "missing-api-key"
    if not config.klaviyo_list_id:
        return "missing-list-id"
    if not email:
        return "missing-email"
    return None


def _descrever_erro(e: Exception) -> tuple[str, int | None, Any]:
    if isinstance(e, AppError):
        return e.message, e.data.get("status"), e.data.get("text")
    return str(e), None, None


def _executar(
    acao: Acao,
    primaria: Callable[[], tuple[int, Any]],
    alternativa: Callable[[], tuple[int, Any]],
) -> ResultadoLista:
    try:
        status, body = primaria()
        return ResultadoLista(acao=acao, ok=True, via="primary", status_code=status, resposta=truncar(body) if body else None)
    except Exception as e:  # qualquer falha da primária cai na alternativa
        erro_primaria, _status, _texto = _descrever_erro(e)
        logger.warning("klaviyo_primaria_falhou", extra={"acao": acao, "err": erro_primaria})

    try:
        status, body = alternativa()
        return ResultadoLista(acao=acao, ok=True, via="fallback", status_code=status, resposta=truncar(body) if body else None)
    except Exception as e:
        erro, status_erro, texto = _descrever_erro(e)
        logger.error("klaviyo_falhou", extra={"acao": acao, "err": erro, "status": status_erro})
        return ResultadoLista(
            acao=acao,
            ok=False,
            status_code=status_erro,
            resposta=truncar(texto) if texto else None,
            erro=truncar(f"primary: {erro_primaria} | fallback: {erro}"),
        )


def inscrever(client: KlaviyoAPI, config: ConfigSync, email: str, telefone_e164: str | None = None) -> ResultadoLista:
    motivo = _motivo_config_ausente(config, email)
    if motivo:
        return ResultadoLista(acao="subscribe", ok=True, skipped=True, motivo=motivo)

    list_id = config.klaviyo_list_id

    def alternativa() -> tuple[int, Any]:
        _status, body = client.importar_perfil(email, telefone_e164)
        profile_id = ((body or {}).get("data") or {}).get("id") if isinstance(body, dict) else None
        if not profile_id:
            raise AppError("profile-import não retornou id do perfil", code="KLAVIYO_NO_PROFILE_ID")
        return client.adicionar_perfis_na_lista(list_id, [str(profile_id)])

    return _executar(
        "subscribe",
        lambda: client.inscrever_em_massa(list_id, email, telefone_e164),
        alternativa,
    )


def desinscrever(client: KlaviyoAPI, config: ConfigSync, email: str) -> ResultadoLista:
    motivo = _motivo_config_ausente(config, email)
    if motivo:
        return ResultadoLista(acao="unsubscribe", ok=True, skipped=True, motivo=motivo)

    list_id = config.klaviyo_list_id
    nao_encontrado: list[bool] = []

    def alternativa() -> tuple[int, Any]:
        profile_id = client.buscar_perfil_por_email(email)
        if not profile_id:
            nao_encontrado.append(True)
            return 200, None
        return client.remover_perfis_da_lista(list_id, [profile_id])

    resultado = _executar(
        "unsubscribe",
        lambda: client.desinscrever_em_massa(list_id, email),
        alternativa,
    )
    if nao_encontrado:
        # perfil inexistente: nada a remover, operação idempotente
        resultado.motivo = "not-found"
    return resultado
