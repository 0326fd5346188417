# guru_sync/services/pipedrive_sync.py
from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from guru_sync.common.errors import ConfigError, ContactCreateFailed, ExternalError
from guru_sync.common.logging_setup import get_logger
from guru_sync.common.settings import ConfigSync
from guru_sync.schemas.guru_webhook import CamposCanonicos
from guru_sync.services.normalizacao import somente_digitos
from guru_sync.services.politicas import resolver_estagio

logger = get_logger(__name__)

VISIBLE_TO_EMPRESA = 3  # visível para toda a empresa


class PipedriveAPI(Protocol):
    def buscar_deal_por_campo(self, termo: str) -> int | None: ...

    def buscar_pessoa_por_email(self, email: str) -> int | None: ...

    def criar_pessoa(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    def criar_deal(self, payload: dict[str, Any]) -> dict[str, Any]: ...


# ======================== Idempotência ========================


def buscar_deal_existente(client: PipedriveAPI, config: ConfigSync, subscription_code: str) -> int | None:
    """
    Procura deal já criado para o subscription_code (match exato no campo customizado).
    Sem o campo configurado a idempotência não é garantida: isso é erro de configuração.
    """
    if not config.campo_assinatura:
        raise ConfigError(
            "DEAL_FIELD_SUBSCRIPTION não configurado: impossível garantir idempotência",
            code="MISSING_SUBSCRIPTION_FIELD",
        )
    if not subscription_code:
        return None
    deal_id = client.buscar_deal_por_campo(subscription_code)
    if deal_id:
        logger.info("deal_ja_existe", extra={"subscription_code": subscription_code, "deal_id": deal_id})
    return deal_id


def exigir_pipeline(config: ConfigSync) -> int:
    """Sem PIPELINE_ID o Pipedrive joga o deal no funil padrão, e deal criado nunca é movido."""
    if config.pipeline_id is None:
        raise ConfigError("PIPELINE_ID não configurado", code="MISSING_PIPELINE_ID")
    return config.pipeline_id


# ======================== Pessoa ========================


def montar_payload_pessoa(config: ConfigSync, email: str, nome: str, telefone: str) -> dict[str, Any]:
    payload: dict[str, Any] = {"name": nome, "visible_to": VISIBLE_TO_EMPRESA}
    if config.person_owner_id is not None:
        payload["owner_id"] = config.person_owner_id
    if email:
        payload["email"] = [{"value": email, "primary": True}]
    if telefone:
        payload["phone"] = [{"value": telefone, "primary": True}]
    return payload


def upsert_pessoa(client: PipedriveAPI, config: ConfigSync, email: str, nome: str, telefone: str) -> int:
    """Reaproveita a pessoa com o mesmo e-mail (sem alterar nada nela); senão cria uma nova."""
    if email:
        existente = client.buscar_pessoa_por_email(email)
        if existente:
            logger.info("pessoa_encontrada", extra={"person_id": existente})
            return existente

    try:
        criado = client.criar_pessoa(montar_payload_pessoa(config, email, nome, telefone))
    except ExternalError as e:
        raise ContactCreateFailed(f"Falha ao criar pessoa: {e.message}", cause=e, data=e.data) from e

    person_id = (criado.get("data") or {}).get("id") if isinstance(criado, Mapping) else None
    if not person_id:
        raise ContactCreateFailed("Pipedrive não retornou id da pessoa criada")
    logger.info("pessoa_criada", extra={"person_id": person_id})
    return int(person_id)


# ======================== Deal ========================


def _preenchido(valor: Any) -> bool:
    if valor is None:
        return False
    if isinstance(valor, float) and not math.isfinite(valor):
        return False
    if isinstance(valor, str):
        return bool(valor.strip())
    if isinstance(valor, (list, tuple, set, dict)):
        return len(valor) > 0
    return True


def montar_campos_extras(pares: Iterable[tuple[str | None, Any]]) -> dict[str, Any]:
    """
    Monta o dicionário esparso de campos customizados: o par entra se, e somente se,
    o id do campo estiver configurado e o valor não for vazio (0/False contam como valor).
    """
    campos: dict[str, Any] = {}
    for field_id, valor in pares:
        if not field_id or not str(field_id).strip():
            continue
        if not _preenchido(valor):
            continue
        campos[str(field_id).strip()] = valor.strip() if isinstance(valor, str) else valor
    return campos


def titulo_deal(campos: CamposCanonicos) -> str:
    digitos = somente_digitos(campos.telefone)
    if digitos:
        return f"({digitos}) ({campos.plano})"
    return f"{campos.plano} – {campos.nome}"


def montar_payload_deal(campos: CamposCanonicos, config: ConfigSync, person_id: int) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": titulo_deal(campos),
        "person_id": person_id,
        "pipeline_id": exigir_pipeline(config),
        "value": campos.valor_recorrente,
        "currency": config.moeda,
        "status": "open",
        "expected_close_date": campos.expected_close_date,
    }
    stage_id = resolver_estagio(campos.last_status, campos.invoice_status, config.estagios)
    if stage_id is not None:
        payload["stage_id"] = stage_id
    if config.deal_owner_id is not None:
        payload["owner_id"] = config.deal_owner_id

    pares: list[tuple[str | None, Any]] = [(config.campo_assinatura, campos.subscription_code)]
    pares.extend((field_id, campos.extras.get(chave)) for chave, field_id in config.campos_extras.items())
    payload.update(montar_campos_extras(pares))
    return payload


def criar_deal(client: PipedriveAPI, payload: dict[str, Any]) -> int | None:
    criado = client.criar_deal(payload)
    deal_id = (criado.get("data") or {}).get("id") if isinstance(criado, Mapping) else None
    logger.info("deal_criado", extra={"deal_id": deal_id, "stage_id": payload.get("stage_id")})
    return int(deal_id) if deal_id else None
