"""Tests for idempotency lookup, person upsert and deal projection."""

import pytest

from guru_sync.common.errors import ConfigError, ContactCreateFailed, ExternalError
from guru_sync.services.guru_eventos import extrair_campos_canonicos
from guru_sync.services.pipedrive_sync import (
    buscar_deal_existente,
    montar_campos_extras,
    montar_payload_deal,
    titulo_deal,
    upsert_pessoa,
)


class TestBuscarDealExistente:
    def test_encontra_deal(self, fake_pipedrive, config) -> None:
        fake_pipedrive.deals["SUB-123"] = 555
        assert buscar_deal_existente(fake_pipedrive, config, "SUB-123") == 555

    def test_nao_encontra(self, fake_pipedrive, config) -> None:
        assert buscar_deal_existente(fake_pipedrive, config, "SUB-999") is None

    def test_sem_campo_configurado_e_erro(self, fake_pipedrive, config) -> None:
        cfg = config.model_copy(update={"campo_assinatura": ""})
        with pytest.raises(ConfigError) as exc:
            buscar_deal_existente(fake_pipedrive, cfg, "SUB-123")
        assert exc.value.code == "MISSING_SUBSCRIPTION_FIELD"


class TestUpsertPessoa:
    def test_reaproveita_pessoa_existente(self, fake_pipedrive, config) -> None:
        fake_pipedrive.pessoas["maria@example.com"] = 42
        assert upsert_pessoa(fake_pipedrive, config, "maria@example.com", "Maria", "+5511987654321") == 42
        assert fake_pipedrive.pessoas_criadas == []

    def test_cria_pessoa(self, fake_pipedrive, config) -> None:
        pid = upsert_pessoa(fake_pipedrive, config, "maria@example.com", "Maria", "+5511987654321")

        assert pid == fake_pipedrive.pessoas["maria@example.com"]
        (payload,) = fake_pipedrive.pessoas_criadas
        assert payload == {
            "name": "Maria",
            "visible_to": 3,
            "owner_id": 99,
            "email": [{"value": "maria@example.com", "primary": True}],
            "phone": [{"value": "+5511987654321", "primary": True}],
        }

    def test_sem_email_cria_sem_buscar(self, fake_pipedrive, config) -> None:
        upsert_pessoa(fake_pipedrive, config, "", "Assinante (sem nome)", "")
        (payload,) = fake_pipedrive.pessoas_criadas
        assert "email" not in payload
        assert "phone" not in payload

    def test_falha_na_criacao(self, fake_pipedrive, config) -> None:
        fake_pipedrive.falhar_criar_pessoa = ExternalError("Falha HTTP 400", code="HTTP_ERROR", data={"status": 400})
        with pytest.raises(ContactCreateFailed) as exc:
            upsert_pessoa(fake_pipedrive, config, "maria@example.com", "Maria", "")
        assert exc.value.code == "PERSON_CREATE_FAILED"
        assert exc.value.status_code == 502
        assert exc.value.data["status"] == 400

    def test_criacao_sem_id(self, fake_pipedrive, config, monkeypatch) -> None:
        monkeypatch.setattr(fake_pipedrive, "criar_pessoa", lambda payload: {"success": True, "data": None})
        with pytest.raises(ContactCreateFailed):
            upsert_pessoa(fake_pipedrive, config, "maria@example.com", "Maria", "")


class TestCamposExtras:
    def test_so_entra_campo_configurado_com_valor(self) -> None:
        pares = [
            ("hash_a", "google"),
            ("", "ignorado"),
            (None, "ignorado"),
            ("hash_b", None),
            ("hash_c", "   "),
            ("hash_d", []),
            ("hash_e", {}),
            ("hash_f", 0),
            ("hash_g", False),
            ("hash_i", float("inf")),
            ("hash_j", float("nan")),
            (" hash_h ", " x "),
        ]
        assert montar_campos_extras(pares) == {"hash_a": "google", "hash_f": 0, "hash_g": False, "hash_h": "x"}


class TestPayloadDeal:
    def test_titulo_com_telefone(self, evento_ativo, config) -> None:
        campos = extrair_campos_canonicos(evento_ativo, config)
        assert titulo_deal(campos) == "(11987654321) (Plano Mensal)"

    def test_titulo_sem_telefone(self, evento_ativo, config) -> None:
        del evento_ativo["subscriber"]["phone_number"]
        campos = extrair_campos_canonicos(evento_ativo, config)
        assert titulo_deal(campos) == "Plano Mensal – Maria Souza"

    def test_payload_completo(self, evento_ativo, config) -> None:
        campos = extrair_campos_canonicos(evento_ativo, config)
        payload = montar_payload_deal(campos, config, person_id=42)

        assert payload == {
            "title": "(11987654321) (Plano Mensal)",
            "person_id": 42,
            "pipeline_id": 7,
            "stage_id": 10,
            "value": pytest.approx(89.9),
            "currency": "BRL",
            "owner_id": 98,
            "status": "open",
            "expected_close_date": "2024-04-11",
            "hash_sub": "SUB-123",
            "hash_utm": "google",
            "hash_cpf": "12345678909",
            "hash_ciclo": 1,
        }

    def test_fatura_pendente_vai_para_estagio_pendente(self, evento_ativo, config) -> None:
        evento_ativo["current_invoice"]["status"] = "overdue"
        payload = montar_payload_deal(extrair_campos_canonicos(evento_ativo, config), config, person_id=1)
        assert payload["stage_id"] == 11

    def test_sem_estagios_nao_envia_stage_nem_owner(self, evento_ativo, config) -> None:
        cfg = config.model_copy(update={"estagios": config.estagios.model_copy(update={"onboarding": None}),
                                        "deal_owner_id": None})
        payload = montar_payload_deal(extrair_campos_canonicos(evento_ativo, cfg), cfg, person_id=1)
        assert "stage_id" not in payload
        assert "owner_id" not in payload

    def test_sem_pipeline_e_erro_de_config(self, evento_ativo, config) -> None:
        cfg = config.model_copy(update={"pipeline_id": None})
        with pytest.raises(ConfigError) as exc:
            montar_payload_deal(extrair_campos_canonicos(evento_ativo, cfg), cfg, person_id=1)
        assert exc.value.code == "MISSING_PIPELINE_ID"
