# guru_sync/services/guru_webhook.py
"""
Orquestração do webhook de assinatura do Guru.

Fluxo: evento cru → campos canônicos → classificação → dois ramos independentes
(lista do Klaviyo e deal no Pipedrive) rodando em paralelo → resultado mesclado.

Deals nunca são atualizados: se já existe um para o subscription_code, o evento é ignorado.
"""
from __future__ import annotations

import contextvars
import hmac
import json
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

from guru_sync.common.errors import AppError, MalformedInput, Unauthorized
from guru_sync.common.http_client import truncar
from guru_sync.common.logging_setup import get_logger
from guru_sync.common.settings import ConfigSync
from guru_sync.schemas.guru_webhook import (
    CamposCanonicos,
    ResultadoLista,
    ResultadoPipedrive,
    ResultadoWebhook,
    WebhookResposta,
)
from guru_sync.services import klaviyo_lista
from guru_sync.services.guru_eventos import extrair_campos_canonicos, is_evento_assinatura
from guru_sync.services.klaviyo_lista import KlaviyoAPI
from guru_sync.services.pipedrive_sync import (
    PipedriveAPI,
    buscar_deal_existente,
    criar_deal,
    exigir_pipeline,
    montar_payload_deal,
    upsert_pessoa,
)
from guru_sync.services.politicas import is_primeiro_ciclo, is_status_criavel, resolver_estagio
from guru_sync.utils.locks import LockPorChave

logger = get_logger(__name__)

T = TypeVar("T")


# ======================== Entrada HTTP ========================


def ler_corpo_json(raw: bytes | None) -> dict[str, Any]:
    """Corpo vazio vira {}; qualquer coisa que não seja um objeto JSON é MalformedInput."""
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedInput(cause=e) from e
    if not isinstance(data, dict):
        raise MalformedInput("JSON body must be an object")
    return data


def validar_segredo(
    config: ConfigSync,
    evento: Mapping[str, Any],
    *,
    query_secret: str | None = None,
    header_secret: str | None = None,
) -> None:
    """Sem GURU_API_TOKEN configurado não há verificação."""
    esperado = config.segredo_webhook
    if not esperado:
        return
    recebido = evento.get("api_token") or query_secret or header_secret or ""
    if not hmac.compare_digest(str(recebido).encode("utf-8"), esperado.encode("utf-8")):
        logger.warning("webhook_token_invalido")
        raise Unauthorized()


# ======================== Orquestrador ========================


class ProcessadorWebhookGuru:
    def __init__(
        self,
        config: ConfigSync,
        pipedrive: PipedriveAPI,
        klaviyo: KlaviyoAPI,
        locks: LockPorChave | None = None,
    ) -> None:
        self.config = config
        self.pipedrive = pipedrive
        self.klaviyo = klaviyo
        self.locks = locks or LockPorChave()

    def processar(self, evento: Mapping[str, Any]) -> ResultadoWebhook:
        webhook_type = evento.get("webhook_type")
        if not is_evento_assinatura(evento):
            logger.info("webhook_nao_aplicavel", extra={"webhook_type": webhook_type})
            return ResultadoWebhook(estado="not-applicable", webhook_type=str(webhook_type))

        campos = extrair_campos_canonicos(evento, self.config)
        criavel = is_status_criavel(campos.last_status, self.config.status_criaveis)
        logger.info(
            "webhook_classificado",
            extra={
                "subscription_code": campos.subscription_code,
                "status": campos.status_normalizado,
                "cancelamento": campos.cancelamento,
                "criavel": criavel,
                "ciclo": campos.ciclo,
            },
        )

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="guru-webhook") as pool:
            fut_lista = pool.submit(_no_contexto(self._ramo_lista), campos, criavel)
            fut_pipe = pool.submit(_no_contexto(self._ramo_pipedrive), campos, criavel)
            lista = fut_lista.result()
            pipe = fut_pipe.result()

        if not pipe.ok:
            estado = "failed"
        elif pipe.skipped:
            estado = "skipped"
        else:
            estado = "processed"

        logger.info(
            "webhook_processado",
            extra={
                "estado": estado,
                "subscription_code": campos.subscription_code,
                "deal_id": pipe.deal_id,
                "motivo": pipe.motivo,
                "klaviyo_acao": lista.acao,
                "klaviyo_ok": lista.ok,
            },
        )
        return ResultadoWebhook(
            estado=estado,
            webhook_type=str(webhook_type) if webhook_type else None,
            campos=campos,
            pipedrive=pipe,
            klaviyo=lista,
        )

    # ---------- ramo lista (best-effort) ----------

    def _ramo_lista(self, campos: CamposCanonicos, criavel: bool) -> ResultadoLista:
        if campos.cancelamento:
            acao = "unsubscribe"
        elif criavel:
            acao = "subscribe"
        else:
            return ResultadoLista(acao="none", skipped=True, motivo="status-not-allowed")

        try:
            if acao == "unsubscribe":
                return klaviyo_lista.desinscrever(self.klaviyo, self.config, campos.email)
            return klaviyo_lista.inscrever(self.klaviyo, self.config, campos.email, campos.telefone_e164)
        except Exception as e:
            logger.exception("klaviyo_ramo_erro", extra={"acao": acao})
            return ResultadoLista(acao=acao, ok=False, erro=truncar(e))

    # ---------- ramo Pipedrive ----------

    def _ramo_pipedrive(self, campos: CamposCanonicos, criavel: bool) -> ResultadoPipedrive:
        if campos.cancelamento:
            return ResultadoPipedrive(skipped=True, motivo="cancellation-event")
        if not campos.subscription_code:
            return ResultadoPipedrive(skipped=True, motivo="missing-subscription-code")
        if not criavel:
            return ResultadoPipedrive(skipped=True, motivo="status-not-allowed")
        if self.config.somente_primeiro_ciclo and not is_primeiro_ciclo(campos):
            return ResultadoPipedrive(skipped=True, motivo="not-first-cycle")

        try:
            with self.locks.travar(campos.subscription_code):
                return self._criar_deal_unico(campos)
        except AppError as e:
            logger.error(
                "pipedrive_ramo_erro",
                extra={"subscription_code": campos.subscription_code, "code": e.code, "err": e.message},
            )
            return ResultadoPipedrive(
                ok=False,
                erro=truncar(e.message),
                codigo_erro=e.code,
                status_code=e.status_code,
            )
        except Exception as e:
            logger.exception("pipedrive_ramo_erro_inesperado", extra={"subscription_code": campos.subscription_code})
            return ResultadoPipedrive(ok=False, erro=truncar(e), codigo_erro="UNEXPECTED", status_code=500)

    def _criar_deal_unico(self, campos: CamposCanonicos) -> ResultadoPipedrive:
        existente = buscar_deal_existente(self.pipedrive, self.config, campos.subscription_code)
        if existente:
            return ResultadoPipedrive(skipped=True, motivo="already-exists", deal_id=existente)

        exigir_pipeline(self.config)

        person_id = upsert_pessoa(
            self.pipedrive,
            self.config,
            campos.email,
            campos.nome,
            campos.telefone_e164 or campos.telefone,
        )
        payload = montar_payload_deal(campos, self.config, person_id)
        deal_id = criar_deal(self.pipedrive, payload)
        return ResultadoPipedrive(
            person_id=person_id,
            deal_id=deal_id,
            stage_id=resolver_estagio(campos.last_status, campos.invoice_status, self.config.estagios),
        )


def _no_contexto(fn: Callable[..., T]) -> Callable[..., T]:
    """Roda `fn` numa cópia do contexto atual (mantém o correlation id nas threads do pool)."""
    ctx = contextvars.copy_context()

    def _run(*args: Any) -> T:
        return ctx.run(fn, *args)

    return _run


# ======================== Resposta ========================


def montar_resposta(resultado: ResultadoWebhook) -> tuple[int, WebhookResposta]:
    """Traduz o resultado do orquestrador em (status HTTP, corpo)."""
    if resultado.estado == "not-applicable":
        return 202, WebhookResposta(ok=True, skipped=True, reason="not-applicable")

    campos = resultado.campos or CamposCanonicos()
    pipe = resultado.pipedrive
    base: dict[str, Any] = {
        "subscription_code": campos.subscription_code or None,
        "status": campos.last_status,
        "pipedrive": pipe,
        "klaviyo": resultado.klaviyo,
    }

    if resultado.estado == "failed":
        return pipe.status_code or 500, WebhookResposta(ok=False, error=pipe.erro, code=pipe.codigo_erro, **base)

    if resultado.estado == "skipped":
        return 200, WebhookResposta(ok=True, skipped=True, reason=pipe.motivo, deal_id=pipe.deal_id, **base)

    return 200, WebhookResposta(
        ok=True,
        person_id=pipe.person_id,
        deal_id=pipe.deal_id,
        mrr=campos.valor_recorrente,
        expected_close_date=campos.expected_close_date,
        **base,
    )
