"""Pytest configuration, sample Guru payloads and fake downstream clients."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from guru_sync.common.errors import ExternalError
from guru_sync.common.settings import ConfigSync, EstagiosPipeline

EVENTO_ATIVO: dict[str, Any] = {
    "webhook_type": "subscription",
    "id": "sub_9f2c",
    "subscription_code": "SUB-123",
    "last_status": "Ativa",
    "subscriber": {
        "name": "Maria Souza",
        "email": "maria@example.com",
        "phone_number": "(11) 98765-4321",
        "phone_local_code": "55",
        "doc": "12345678909",
    },
    "product": {"id": "prod-1", "name": "Plano Mensal", "offer": {"id": "of-9"}},
    "current_invoice": {
        "id": "inv-1",
        "status": "paid",
        "value": "89.90",
        "cycle": 1,
        "period_start": "2024-03-10",
        "period_end": "2024-04-10",
    },
    "last_transaction": {
        "source": {"utm_source": "google", "utm_medium": "cpc", "utm_campaign": ""},
        "payment": {"method": "credit_card", "credit_card": {"brand": "visa", "last_digits": "4242"}},
    },
    "dates": {"started_at": "2024-03-10T12:00:00Z"},
}


@pytest.fixture
def evento_ativo() -> dict[str, Any]:
    """Assinatura ativa no primeiro ciclo, com todos os campos preenchidos."""
    return copy.deepcopy(EVENTO_ATIVO)


@pytest.fixture
def evento_cancelado(evento_ativo: dict[str, Any]) -> dict[str, Any]:
    evento_ativo["last_status"] = "cancelada"
    evento_ativo["dates"]["canceled_at"] = "2024-04-01T10:00:00Z"
    return evento_ativo


@pytest.fixture
def config() -> ConfigSync:
    return ConfigSync(
        pipedrive_domain="acme",
        pipedrive_token="tok_pipedrive_123",
        pipeline_id=7,
        estagios=EstagiosPipeline(onboarding=10, pendente=11, churn=12),
        person_owner_id=99,
        deal_owner_id=98,
        campo_assinatura="hash_sub",
        campos_extras={"utm_source": "hash_utm", "cpf": "hash_cpf", "ciclo": "hash_ciclo"},
        status_criaveis=frozenset({"ativa", "iniciada", "trial", "active", "started", "trialing"}),
        klaviyo_api_key="pk_test_abcdef",
        klaviyo_list_id="LST1",
    )


class FakePipedrive:
    """Pipedrive em memória: deals indexados pelo campo de assinatura, pessoas pelo e-mail."""

    def __init__(self, campo_assinatura: str = "hash_sub") -> None:
        self.campo_assinatura = campo_assinatura
        self.deals: dict[str, int] = {}
        self.pessoas: dict[str, int] = {}
        self.deals_criados: list[dict[str, Any]] = []
        self.pessoas_criadas: list[dict[str, Any]] = []
        self.falhar_busca_deal: ExternalError | None = None
        self.falhar_criar_pessoa: ExternalError | None = None
        self.falhar_criar_deal: ExternalError | None = None
        self._seq = 100

    def _proximo_id(self) -> int:
        self._seq += 1
        return self._seq

    def buscar_deal_por_campo(self, termo: str) -> int | None:
        if self.falhar_busca_deal:
            raise self.falhar_busca_deal
        return self.deals.get(termo)

    def buscar_pessoa_por_email(self, email: str) -> int | None:
        return self.pessoas.get(email)

    def criar_pessoa(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.falhar_criar_pessoa:
            raise self.falhar_criar_pessoa
        pid = self._proximo_id()
        self.pessoas_criadas.append(payload)
        for email in payload.get("email") or []:
            self.pessoas[email["value"]] = pid
        return {"success": True, "data": {"id": pid}}

    def criar_deal(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.falhar_criar_deal:
            raise self.falhar_criar_deal
        did = self._proximo_id()
        self.deals_criados.append(payload)
        codigo = payload.get(self.campo_assinatura)
        if codigo:
            self.deals[codigo] = did
        return {"success": True, "data": {"id": did}}


class FakeKlaviyo:
    """Registra as chamadas; falhas configuráveis por etapa (primária/alternativa)."""

    def __init__(self) -> None:
        self.chamadas: list[tuple[str, tuple[Any, ...]]] = []
        self.falhar_primaria = False
        self.falhar_alternativa = False
        self.perfil_id: str | None = "01HPROFILE"

    def _erro(self, status: int = 400) -> ExternalError:
        return ExternalError(
            f"Falha HTTP {status}", code="HTTP_ERROR", data={"status": status, "text": '{"errors":[]}'}
        )

    def inscrever_em_massa(self, list_id: str, email: str, telefone_e164: str | None = None) -> tuple[int, Any]:
        self.chamadas.append(("inscrever_em_massa", (list_id, email, telefone_e164)))
        if self.falhar_primaria:
            raise self._erro()
        return 202, {}

    def importar_perfil(self, email: str, telefone_e164: str | None = None) -> tuple[int, Any]:
        self.chamadas.append(("importar_perfil", (email, telefone_e164)))
        if self.falhar_alternativa:
            raise self._erro(500)
        return 200, {"data": {"type": "profile", "id": self.perfil_id}}

    def adicionar_perfis_na_lista(self, list_id: str, profile_ids: list[str]) -> tuple[int, Any]:
        self.chamadas.append(("adicionar_perfis_na_lista", (list_id, tuple(profile_ids))))
        return 204, {}

    def desinscrever_em_massa(self, list_id: str, email: str) -> tuple[int, Any]:
        self.chamadas.append(("desinscrever_em_massa", (list_id, email)))
        if self.falhar_primaria:
            raise self._erro()
        return 202, {}

    def buscar_perfil_por_email(self, email: str) -> str | None:
        self.chamadas.append(("buscar_perfil_por_email", (email,)))
        if self.falhar_alternativa:
            raise self._erro(500)
        return self.perfil_id

    def remover_perfis_da_lista(self, list_id: str, profile_ids: list[str]) -> tuple[int, Any]:
        self.chamadas.append(("remover_perfis_da_lista", (list_id, tuple(profile_ids))))
        return 204, {}

    def nomes(self) -> list[str]:
        return [nome for nome, _ in self.chamadas]


@pytest.fixture
def fake_pipedrive() -> FakePipedrive:
    return FakePipedrive()


@pytest.fixture
def fake_klaviyo() -> FakeKlaviyo:
    return FakeKlaviyo()
