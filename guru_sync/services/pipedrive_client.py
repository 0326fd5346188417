# guru_sync/services/pipedrive_client.py
from __future__ import annotations

from typing import Any, cast

import requests

from guru_sync.common.errors import ConfigError, ExternalError
from guru_sync.common.http_client import build_session, request_json, truncar
from guru_sync.common.settings import ConfigSync


class PipedriveClient:
    """
    Cliente mínimo do Pipedrive: buscas exatas e criação de pessoa/deal.

    Não existe método de update/move de deal: depois de criado, o deal pertence ao time comercial.
    """

    def __init__(self, config: ConfigSync, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or build_session()

    @property
    def base_url(self) -> str:
        if not self.config.pipedrive_domain or not self.config.pipedrive_token:
            raise ConfigError("PIPEDRIVE_DOMAIN/PIPEDRIVE_TOKEN não configurados", code="MISSING_PIPEDRIVE_CREDENTIALS")
        return f"https://{self.config.pipedrive_domain}.pipedrive.com"

    def _call(self, method: str, path: str, *, params: dict[str, Any] | None = None, json: Any = None) -> dict[str, Any]:
        query = dict(params or {})
        query["api_token"] = self.config.pipedrive_token
        status, body = request_json(
            self.session,
            method,
            f"{self.base_url}{path}",
            params=query,
            json=json,
            timeout=self.config.timeout,
        )
        data = body if isinstance(body, dict) else {}
        if data.get("success") is False:
            raise ExternalError(
                f"Pipedrive respondeu success=false em {path}",
                code="PIPEDRIVE_ERROR",
                data={"status": status, "text": truncar(data)},
            )
        return data

    def _primeiro_id(self, data: dict[str, Any]) -> int | None:
        items = cast(list[dict[str, Any]], (data.get("data") or {}).get("items") or [])
        if not items:
            return None
        item_id = (items[0].get("item") or {}).get("id")
        return int(item_id) if item_id else None

    def buscar_deal_por_campo(self, termo: str) -> int | None:
        data = self._call(
            "GET",
            "/api/v2/deals/search",
            params={"term": termo, "fields": "custom_fields", "exact_match": "true"},
        )
        return self._primeiro_id(data)

    def buscar_pessoa_por_email(self, email: str) -> int | None:
        data = self._call(
            "GET",
            "/api/v2/persons/search",
            params={"term": email, "fields": "email", "exact_match": "true"},
        )
        return self._primeiro_id(data)

    def criar_pessoa(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._call("POST", "/api/v1/persons", json=payload)

    def criar_deal(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._call("POST", "/api/v1/deals", json=payload)
