"""Tests for canonical field extraction from Guru payloads."""

import pytest

from guru_sync.schemas.guru_webhook import NOME_PADRAO, PLANO_PADRAO
from guru_sync.services.guru_eventos import extrair_campos_canonicos, is_evento_assinatura


class TestTipoDeEvento:
    @pytest.mark.parametrize("evento", [{}, {"webhook_type": ""}, {"webhook_type": "subscription"}, {"webhook_type": "Subscription"}])
    def test_assinatura(self, evento) -> None:
        assert is_evento_assinatura(evento)

    @pytest.mark.parametrize("tipo", ["transaction", "abandoned_cart"])
    def test_outros_tipos(self, tipo) -> None:
        assert not is_evento_assinatura({"webhook_type": tipo})


class TestExtrairCamposCanonicos:
    def test_evento_completo(self, evento_ativo, config) -> None:
        campos = extrair_campos_canonicos(evento_ativo, config)

        assert campos.email == "maria@example.com"
        assert campos.nome == "Maria Souza"
        assert campos.telefone == "(11) 98765-4321"
        assert campos.telefone_e164 == "+5511987654321"
        assert campos.subscription_code == "SUB-123"
        assert campos.plano == "Plano Mensal"
        assert campos.valor_recorrente == pytest.approx(89.9)
        assert campos.last_status == "Ativa"
        assert campos.status_normalizado == "ativa"
        assert campos.invoice_status == "paid"
        assert campos.ciclo == 1
        assert campos.expected_close_date == "2024-04-11"
        assert campos.cancelamento is False

    def test_extras_semanticos(self, evento_ativo, config) -> None:
        extras = extrair_campos_canonicos(evento_ativo, config).extras

        assert extras["utm_source"] == "google"
        assert extras["canal"] == "cpc"
        assert extras["invoice_id"] == "inv-1"
        assert extras["ciclo_inicio"] == "2024-03-10"
        assert extras["ciclo_fim"] == "2024-04-10"
        assert extras["cartao_bandeira"] == "visa"
        assert extras["cartao_final"] == "4242"
        assert extras["cpf"] == "12345678909"
        assert extras["oferta_id"] == "of-9"

    def test_evento_vazio_usa_padroes(self, config) -> None:
        campos = extrair_campos_canonicos({}, config)

        assert campos.email == ""
        assert campos.nome == NOME_PADRAO
        assert campos.plano == PLANO_PADRAO
        assert campos.subscription_code == ""
        assert campos.valor_recorrente == 0.0
        assert campos.last_status == "unknown"
        assert campos.ciclo == 0
        assert campos.telefone_e164 is None
        assert len(campos.expected_close_date) == 10

    def test_subobjetos_invalidos_sao_ignorados(self, config) -> None:
        evento = {"subscriber": None, "last_transaction": "x", "current_invoice": [], "id": "sub_1"}
        campos = extrair_campos_canonicos(evento, config)
        assert campos.email == ""
        assert campos.subscription_code == "sub_1"

    def test_fallback_para_contato_da_transacao(self, config) -> None:
        evento = {
            "internal_id": "int-7",
            "last_transaction": {
                "contact": {"email": " joao@example.com ", "name": "João", "phone": "21999998888"},
                "product": {"name": "Plano Anual"},
                "invoice": {"value": 1000, "cycle": "3", "status": "unpaid"},
            },
        }
        campos = extrair_campos_canonicos(evento, config)

        assert campos.email == "joao@example.com"
        assert campos.nome == "João"
        assert campos.telefone_e164 == "+5521999998888"
        assert campos.subscription_code == "int-7"
        assert campos.plano == "Plano Anual"
        assert campos.valor_recorrente == 1000.0
        assert campos.ciclo == 3
        assert campos.invoice_status == "unpaid"

    def test_valor_invalido_vira_zero(self, evento_ativo, config) -> None:
        evento_ativo["current_invoice"]["value"] = "abc"
        evento_ativo["current_invoice"]["cycle"] = "n/a"
        campos = extrair_campos_canonicos(evento_ativo, config)
        assert campos.valor_recorrente == 0.0
        assert campos.ciclo == 0

    @pytest.mark.parametrize("valor", [float("inf"), float("-inf"), float("nan"), "1e400", "NaN"])
    def test_numero_nao_finito_vira_zero(self, evento_ativo, config, valor) -> None:
        evento_ativo["current_invoice"]["value"] = valor
        evento_ativo["current_invoice"]["cycle"] = valor
        campos = extrair_campos_canonicos(evento_ativo, config)
        assert campos.valor_recorrente == 0.0
        assert campos.ciclo == 0

    def test_cancelamento_detectado(self, evento_cancelado, config) -> None:
        assert extrair_campos_canonicos(evento_cancelado, config).cancelamento is True

    def test_campos_sao_imutaveis(self, evento_ativo, config) -> None:
        campos = extrair_campos_canonicos(evento_ativo, config)
        with pytest.raises(Exception):
            campos.email = "outro@example.com"
