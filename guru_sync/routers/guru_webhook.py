# guru_sync/routers/guru_webhook.py
from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from guru_sync.common.errors import AppError
from guru_sync.common.http_client import truncar
from guru_sync.common.logging_setup import get_logger
from guru_sync.common.settings import get_config_sync
from guru_sync.services.guru_webhook import (
    ProcessadorWebhookGuru,
    ler_corpo_json,
    montar_resposta,
    validar_segredo,
)
from guru_sync.services.klaviyo_client import KlaviyoClient
from guru_sync.services.pipedrive_client import PipedriveClient

router = APIRouter(prefix="/webhooks", tags=["Webhooks Guru"])

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_processador() -> ProcessadorWebhookGuru:
    config = get_config_sync()
    return ProcessadorWebhookGuru(config, PipedriveClient(config), KlaviyoClient(config))


def _json(status_code: int, body: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


@router.post(
    "/guru",
    summary="Webhook de assinaturas do Guru",
    description="""
Recebe eventos de ciclo de vida de assinatura do Guru e:

- cria **um único** deal no Pipedrive por `subscription_code` (nunca atualiza/move deals existentes);
- inscreve ou remove o e-mail da lista do Klaviyo.

Eventos com `webhook_type` diferente de `subscription` respondem **202** sem efeito colateral.
""",
)
async def receber_webhook_guru(
    request: Request,
    secret: str | None = Query(default=None),
    processador: ProcessadorWebhookGuru = Depends(get_processador),
) -> JSONResponse:
    try:
        evento = ler_corpo_json(await request.body())
        validar_segredo(
            processador.config,
            evento,
            query_secret=secret,
            header_secret=request.headers.get("X-Webhook-Secret"),
        )
        resultado = await run_in_threadpool(processador.processar, evento)
    except AppError as e:
        logger.warning("webhook_rejeitado", extra={"code": e.code, "status": e.status_code})
        return _json(e.status_code, {"ok": False, "error": truncar(e.message), "code": e.code})
    except Exception as e:
        logger.exception("webhook_erro_inesperado")
        return _json(500, {"ok": False, "error": truncar(e)})

    status_code, resposta = montar_resposta(resultado)
    return _json(status_code, resposta.model_dump(mode="json", by_alias=True, exclude_none=True))
