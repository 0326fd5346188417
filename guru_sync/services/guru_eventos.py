# guru_sync/services/guru_eventos.py
"""
Extração dos campos canônicos de um webhook de assinatura do Guru.

É o único módulo que conhece o formato cru do payload (subscriber, last_transaction,
current_invoice, dates, product...). Todo o resto consome `CamposCanonicos`.
"""
from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from guru_sync.common.settings import ConfigSync
from guru_sync.schemas.guru_webhook import NOME_PADRAO, PLANO_PADRAO, CamposCanonicos
from guru_sync.services.normalizacao import (
    normalizar_status,
    parse_data,
    pegar,
    primeiro_preenchido,
    resolver_expected_close_date,
    to_e164,
    ymd_utc,
)
from guru_sync.services.politicas import is_evento_cancelamento

WEBHOOK_TYPE_ASSINATURA = "subscription"


def _texto(valor: Any) -> str:
    return "" if valor is None else str(valor).strip()


def _float(valor: Any) -> float:
    try:
        v = float(valor) if valor not in (None, "") else 0.0
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def _int(valor: Any) -> int:
    v = _float(valor)
    try:
        return int(v)
    except (OverflowError, ValueError):
        return 0


def _data_ymd(valor: Any) -> str:
    d: datetime | None = parse_data(valor)
    return ymd_utc(d) if d else ""


def is_evento_assinatura(evento: Mapping[str, Any]) -> bool:
    """Sem webhook_type o evento é tratado como assinatura (payload legado)."""
    tipo = evento.get("webhook_type")
    if tipo is None or _texto(tipo) == "":
        return True
    return _texto(tipo).lower() == WEBHOOK_TYPE_ASSINATURA


def _extras(evento: Mapping[str, Any], telefone_e164: str | None, documento: str) -> dict[str, Any]:
    """Atributos opcionais por chave semântica; o filtro de vazios fica no montador de campos do deal."""
    trx = pegar(evento, "last_transaction")
    fonte = pegar(trx, "source")
    fatura = pegar(evento, "current_invoice") or pegar(trx, "invoice")
    cartao = pegar(trx, "payment", "credit_card")

    return {
        "origem": primeiro_preenchido(pegar(fonte, "source"), pegar(evento, "origin"), "Guru"),
        "canal": primeiro_preenchido(pegar(fonte, "utm_medium"), pegar(fonte, "checkout_source")),
        "utm_source": pegar(fonte, "utm_source"),
        "utm_medium": pegar(fonte, "utm_medium"),
        "utm_campaign": pegar(fonte, "utm_campaign"),
        "utm_content": pegar(fonte, "utm_content"),
        "utm_term": pegar(fonte, "utm_term"),
        "invoice_id": pegar(fatura, "id"),
        "invoice_status": pegar(fatura, "status"),
        "ciclo": pegar(fatura, "cycle"),
        "ciclo_inicio": _data_ymd(primeiro_preenchido(pegar(fatura, "period_start"), pegar(evento, "dates", "cycle_start_date"))),
        "ciclo_fim": _data_ymd(primeiro_preenchido(pegar(fatura, "period_end"), pegar(evento, "dates", "cycle_end_date"))),
        "cartao_bandeira": pegar(cartao, "brand"),
        "cartao_final": pegar(cartao, "last_digits"),
        "metodo_pagamento": primeiro_preenchido(pegar(trx, "payment", "method"), pegar(evento, "payment_method")),
        "cpf": documento,
        "telefone_e164": telefone_e164,
        "produto_id": primeiro_preenchido(pegar(evento, "product", "id"), pegar(trx, "product", "id")),
        "oferta_id": primeiro_preenchido(pegar(evento, "product", "offer", "id"), pegar(trx, "product", "offer", "id")),
    }


def extrair_campos_canonicos(evento: Mapping[str, Any], config: ConfigSync) -> CamposCanonicos:
    """Extrai e normaliza os campos do evento uma única vez; ausências viram padrões documentados."""
    assinante = pegar(evento, "subscriber")
    contato = pegar(evento, "last_transaction", "contact")

    email = _texto(primeiro_preenchido(pegar(assinante, "email"), pegar(contato, "email")))
    nome = _texto(primeiro_preenchido(pegar(assinante, "name"), pegar(contato, "name"))) or NOME_PADRAO
    telefone = _texto(
        primeiro_preenchido(
            pegar(assinante, "phone_number"),
            pegar(assinante, "phone"),
            pegar(contato, "phone_number"),
            pegar(contato, "phone"),
        )
    )
    ddi = _texto(primeiro_preenchido(pegar(assinante, "phone_local_code"), pegar(contato, "phone_local_code")))
    telefone_e164 = to_e164(telefone, ddi or config.codigo_pais_padrao)
    documento = _texto(primeiro_preenchido(pegar(assinante, "doc"), pegar(contato, "doc")))

    codigo = _texto(primeiro_preenchido(evento.get("subscription_code"), evento.get("id"), evento.get("internal_id")))
    plano = _texto(
        primeiro_preenchido(
            pegar(evento, "product", "name"),
            pegar(evento, "next_product", "name"),
            pegar(evento, "last_transaction", "product", "name"),
        )
    ) or PLANO_PADRAO
    valor = _float(
        primeiro_preenchido(pegar(evento, "current_invoice", "value"), pegar(evento, "last_transaction", "invoice", "value"))
    )
    last_status = _texto(evento.get("last_status")) or "unknown"
    invoice_status = _texto(
        primeiro_preenchido(pegar(evento, "current_invoice", "status"), pegar(evento, "last_transaction", "invoice", "status"))
    )
    ciclo = _int(
        primeiro_preenchido(pegar(evento, "current_invoice", "cycle"), pegar(evento, "last_transaction", "invoice", "cycle"))
    )

    return CamposCanonicos(
        email=email,
        nome=nome,
        telefone=telefone,
        telefone_e164=telefone_e164,
        documento=documento,
        subscription_code=codigo,
        plano=plano,
        valor_recorrente=valor,
        last_status=last_status,
        status_normalizado=normalizar_status(last_status),
        invoice_status=invoice_status,
        ciclo=ciclo,
        expected_close_date=resolver_expected_close_date(evento, somar_um_dia=config.somar_um_dia_fechamento),
        cancelamento=is_evento_cancelamento(evento),
        extras=_extras(evento, telefone_e164, documento),
    )
