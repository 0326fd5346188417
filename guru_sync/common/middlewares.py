# guru_sync/common/middlewares.py
from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from guru_sync.common.logging_setup import get_correlation_id, set_correlation_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        # o Guru não manda X-Request-Id; gera um por entrega de webhook
        cid = request.headers.get("X-Request-Id") or request.headers.get("X-Correlation-ID") or uuid.uuid4().hex
        set_correlation_id(cid)

        response = await call_next(request)
        response.headers["X-Request-Id"] = get_correlation_id()
        return response
