# guru_sync/services/klaviyo_client.py
from __future__ import annotations

import json
from typing import Any

import requests

from guru_sync.common.http_client import build_session, request_json
from guru_sync.common.settings import ConfigSync

BASE_URL_KLAVIYO = "https://a.klaviyo.com"


def _perfil_inscricao(email: str, telefone_e164: str | None) -> dict[str, Any]:
    inscricoes: dict[str, Any] = {"email": {"marketing": {"consent": "SUBSCRIBED"}}}
    attrs: dict[str, Any] = {"email": email}
    if telefone_e164:
        attrs["phone_number"] = telefone_e164
        inscricoes["sms"] = {"marketing": {"consent": "SUBSCRIBED"}}
    attrs["subscriptions"] = inscricoes
    return {"type": "profile", "attributes": attrs}


class KlaviyoClient:
    """Chamadas cruas à API do Klaviyo (autenticação por chave privada + header `revision`)."""

    def __init__(self, config: ConfigSync, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or build_session()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Klaviyo-API-Key {self.config.klaviyo_api_key}",
            "revision": self.config.klaviyo_revision,
            "Content-Type": "application/vnd.api+json",
            "Accept": "application/vnd.api+json",
        }

    def _call(self, method: str, path: str, **kwargs: Any) -> tuple[int, Any]:
        return request_json(
            self.session,
            method,
            f"{BASE_URL_KLAVIYO}{path}",
            headers=self._headers(),
            timeout=self.config.timeout,
            **kwargs,
        )

    # ---------- inscrição ----------

    def inscrever_em_massa(self, list_id: str, email: str, telefone_e164: str | None = None) -> tuple[int, Any]:
        body = {
            "data": {
                "type": "profile-subscription-bulk-create-job",
                "attributes": {"profiles": {"data": [_perfil_inscricao(email, telefone_e164)]}},
                "relationships": {"list": {"data": {"type": "list", "id": list_id}}},
            }
        }
        return self._call("POST", "/api/profile-subscription-bulk-create-jobs/", json=body)

    def importar_perfil(self, email: str, telefone_e164: str | None = None) -> tuple[int, Any]:
        attrs: dict[str, Any] = {"email": email}
        if telefone_e164:
            attrs["phone_number"] = telefone_e164
        body = {"data": {"type": "profile", "attributes": attrs}}
        return self._call("POST", "/api/profile-import/", json=body)

    def adicionar_perfis_na_lista(self, list_id: str, profile_ids: list[str]) -> tuple[int, Any]:
        body = {"data": [{"type": "profile", "id": pid} for pid in profile_ids]}
        return self._call("POST", f"/api/lists/{list_id}/relationships/profiles/", json=body)

    # ---------- desinscrição ----------

    def desinscrever_em_massa(self, list_id: str, email: str) -> tuple[int, Any]:
        body = {
            "data": {
                "type": "profile-subscription-bulk-delete-job",
                "attributes": {
                    "profiles": {"data": [{"type": "profile", "attributes": {"email": email}}]},
                },
                "relationships": {"list": {"data": {"type": "list", "id": list_id}}},
            }
        }
        return self._call("POST", "/api/profile-subscription-bulk-delete-jobs/", json=body)

    def buscar_perfil_por_email(self, email: str) -> str | None:
        _status, body = self._call("GET", "/api/profiles/", params={"filter": f"equals(email,{json.dumps(email)})"})
        items = (body or {}).get("data") or [] if isinstance(body, dict) else []
        return str(items[0].get("id")) if items and items[0].get("id") else None

    def remover_perfis_da_lista(self, list_id: str, profile_ids: list[str]) -> tuple[int, Any]:
        body = {"data": [{"type": "profile", "id": pid} for pid in profile_ids]}
        return self._call("DELETE", f"/api/lists/{list_id}/relationships/profiles/", json=body)
