# guru_sync/schemas/guru_webhook.py
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

NOME_PADRAO = "Assinante (sem nome)"
PLANO_PADRAO = "Plano"

MotivoPipedrive = Literal[
    "cancellation-event",
    "missing-subscription-code",
    "status-not-allowed",
    "not-first-cycle",
    "already-exists",
]


class CamposCanonicos(BaseModel):
    """Campos extraídos e normalizados uma única vez por evento; só leitura depois disso."""

    model_config = ConfigDict(frozen=True)

    email: str = ""
    nome: str = NOME_PADRAO
    telefone: str = ""
    telefone_e164: str | None = None
    documento: str = ""
    subscription_code: str = ""
    plano: str = PLANO_PADRAO
    valor_recorrente: float = 0.0
    last_status: str = "unknown"
    status_normalizado: str = "unknown"
    invoice_status: str = ""
    ciclo: int = 0
    expected_close_date: str = ""
    cancelamento: bool = False
    extras: dict[str, Any] = Field(default_factory=dict)


class ResultadoLista(BaseModel):
    """Resultado do ramo Klaviyo (inscrição/desinscrição na lista)."""

    acao: Literal["subscribe", "unsubscribe", "none"] = "none"
    ok: bool = True
    skipped: bool = False
    motivo: str | None = None
    via: Literal["primary", "fallback"] | None = None
    status_code: int | None = None
    resposta: Any = None
    erro: str | None = None


class ResultadoPipedrive(BaseModel):
    """Resultado do ramo Pipedrive (criação única de deal)."""

    ok: bool = True
    skipped: bool = False
    motivo: MotivoPipedrive | None = None
    person_id: int | None = None
    deal_id: int | None = None
    stage_id: int | None = None
    erro: str | None = None
    codigo_erro: str | None = None
    status_code: int | None = None


class ResultadoWebhook(BaseModel):
    """Resultado final de um evento: classificação + os dois ramos já mesclados."""

    estado: Literal["not-applicable", "skipped", "processed", "failed"]
    webhook_type: str | None = None
    campos: CamposCanonicos | None = None
    pipedrive: ResultadoPipedrive = Field(default_factory=ResultadoPipedrive)
    klaviyo: ResultadoLista = Field(default_factory=ResultadoLista)


class WebhookResposta(BaseModel):
    ok: bool
    skipped: bool = False
    reason: str | None = None
    person_id: int | None = Field(default=None, serialization_alias="personId")
    deal_id: int | None = Field(default=None, serialization_alias="dealId")
    subscription_code: str | None = None
    status: str | None = None
    mrr: float | None = None
    expected_close_date: str | None = None
    pipedrive: ResultadoPipedrive | None = None
    klaviyo: ResultadoLista | None = None
    error: str | None = None
    code: str | None = None
