# guru_sync/services/politicas.py
"""Regras de decisão puras: status criável, cancelamento, primeiro ciclo e estágio alvo."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from guru_sync.common.settings import EstagiosPipeline
from guru_sync.schemas.guru_webhook import CamposCanonicos
from guru_sync.services.normalizacao import normalizar_status, pegar

STATUS_CANCELAMENTO: frozenset[str] = frozenset(
    {
        "cancelada",
        "cancelado",
        "cancelled",
        "canceled",
        "cancelamento",
        "cancelada pelo cliente",
        "cancelada pelo vendedor",
        "cancelada pelo admin",
    }
)

INVOICE_PENDENTE: frozenset[str] = frozenset(
    {
        "unpaid",
        "overdue",
        "pending",
        "past_due",
        "pendente",
        "em atraso",
        "atrasada",
        "nao paga",
        "aguardando pagamento",
    }
)

_FALSOS = {"", "0", "false", "no", "nao", "n", "off", "null", "none"}


def is_status_criavel(status: Any, allow_list: Iterable[str]) -> bool:
    alvo = normalizar_status(status)
    if not alvo:
        return False
    return alvo in {normalizar_status(s) for s in allow_list}


def is_status_cancelamento(status: Any) -> bool:
    return normalizar_status(status) in STATUS_CANCELAMENTO


def _truthy(valor: Any) -> bool:
    if isinstance(valor, str):
        return normalizar_status(valor) not in _FALSOS
    return bool(valor)


def is_evento_cancelamento(evento: Mapping[str, Any]) -> bool:
    """
    Qualquer sinal basta (OU lógico): cada formato de evento do Guru expõe o cancelamento
    de um jeito diferente.
    """
    if is_status_cancelamento(pegar(evento, "last_status")):
        return True
    if _truthy(pegar(evento, "cancel_at_cycle_end")):
        return True
    for caminho in (
        ("dates", "canceled_at"),
        ("dates", "cancelled_at"),
        ("canceled_at",),
        ("cancelled_at",),
    ):
        valor = pegar(evento, *caminho)
        if valor is not None and str(valor).strip():
            return True
    motivo = pegar(evento, "cancel_reason")
    return isinstance(motivo, str) and bool(motivo.strip())


def is_primeiro_ciclo(campos: CamposCanonicos) -> bool:
    return campos.ciclo == 1


def resolver_estagio(status: Any, invoice_status: Any, estagios: EstagiosPipeline) -> int | None:
    if estagios.onboarding is None:
        return None
    if is_status_cancelamento(status):
        return estagios.churn if estagios.churn is not None else estagios.onboarding
    if normalizar_status(invoice_status) in INVOICE_PENDENTE:
        return estagios.pendente if estagios.pendente is not None else estagios.onboarding
    return estagios.onboarding
