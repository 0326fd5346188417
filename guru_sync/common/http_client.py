# guru_sync/common/http_client.py
from __future__ import annotations

from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import ExternalError
from .logging_setup import get_correlation_id, get_logger, mask_secrets

DEFAULT_TIMEOUT: tuple[float, float] = (5.0, 30.0)
TRANSIENT_STATUSES = (429, 500, 502, 503, 504)
MAX_DIAG_CHARS = 500

logger = get_logger("http")


def truncar(texto: Any, limite: int = MAX_DIAG_CHARS) -> str:
    s = "" if texto is None else str(texto)
    return s if len(s) <= limite else s[:limite] + "…"


def _build_retry(total: int = 0) -> Retry:
    """Sem retry automático: cada chamada é tentativa única (o Guru reenvia o webhook)."""
    return Retry(
        total=total,
        connect=total,
        read=total,
        status=total,
        raise_on_status=False,
        respect_retry_after_header=True,
    )


def build_session(user_agent: str = "guru-sync/HTTPClient") -> requests.Session:
    s = requests.Session()
    s.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": "application/json",
        }
    )
    adapter = HTTPAdapter(max_retries=_build_retry(), pool_connections=10, pool_maxsize=10)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    timeout: tuple[float, float] = DEFAULT_TIMEOUT,
    **kwargs: Any,
) -> tuple[int, Any]:
    """
    Executa a requisição e devolve (status, corpo_json).

    Corpo vazio ou não-JSON vira {}. Qualquer falha de rede ou status não-2xx vira ExternalError
    com status e corpo truncado em `data`.
    """
    headers = dict(kwargs.pop("headers", None) or {})
    headers.setdefault("X-Correlation-ID", get_correlation_id())
    url_log = mask_secrets(url)

    try:
        res = session.request(method, url, headers=headers, timeout=timeout, **kwargs)
    except requests.Timeout as e:
        logger.warning("http_timeout", extra={"method": method, "url": url_log})
        raise ExternalError(
            f"Timeout ao chamar {url_log}",
            code="HTTP_TIMEOUT",
            cause=e,
            retryable=True,
            data={"url": url_log},
        ) from e
    except requests.RequestException as e:
        logger.error("http_request_exception", extra={"method": method, "url": url_log, "err": str(e)})
        raise ExternalError(
            f"Erro de rede ao chamar {url_log}",
            code="HTTP_REQUEST_ERROR",
            cause=e,
            retryable=True,
            data={"url": url_log},
        ) from e

    status = res.status_code
    try:
        body: Any = res.json() if (res.content or b"").strip() else {}
    except ValueError:
        body = {}

    if not res.ok:
        logger.error(
            "http_error",
            extra={"method": method, "url": url_log, "status": status, "retryable": status in TRANSIENT_STATUSES},
        )
        raise ExternalError(
            f"Falha HTTP {status} ao chamar {url_log}",
            code="HTTP_ERROR",
            retryable=status in TRANSIENT_STATUSES,
            data={"url": url_log, "status": status, "text": truncar(res.text)},
        )

    logger.info("http_ok", extra={"method": method, "url": url_log, "status": status})
    return status, body
