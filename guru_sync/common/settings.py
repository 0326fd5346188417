# guru_sync/common/settings.py
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from guru_sync.utils.texto import normalizar_status

from .errors import ConfigError

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # raiz do projeto (onde fica o .env)

DEFAULT_ALLOW_CREATE = "ativa,iniciada,trial,active,started,trialing"


class Settings(BaseSettings):
    # Pipedrive
    PIPEDRIVE_DOMAIN: str = ""
    PIPEDRIVE_TOKEN: str = ""
    PIPELINE_ID: int | None = None
    STAGE_ID_ONBOARD: int | None = None
    STAGE_ID_PENDENTE: int | None = None
    STAGE_ID_CHURN: int | None = None
    PERSON_OWNER_ID: int | None = None
    DEAL_OWNER_ID: int | None = None
    DEAL_FIELD_SUBSCRIPTION: str = ""
    DEAL_FIELD_MAP: str = "{}"  # JSON: chave semântica -> hash do campo no Pipedrive
    DEAL_CURRENCY: str = "BRL"

    # regras de criação
    ALLOW_CREATE_STATUSES: str = DEFAULT_ALLOW_CREATE
    SOMENTE_PRIMEIRO_CICLO: bool = False
    EXPECTED_CLOSE_SOMAR_UM_DIA: bool = True

    # Guru (segredo opcional do webhook)
    GURU_API_TOKEN: str = ""

    # Klaviyo
    KLAVIYO_API_KEY: str = ""
    KLAVIYO_LIST_ID: str = ""
    KLAVIYO_REVISION: str = "2024-10-15"

    DEFAULT_COUNTRY_CODE: str = "55"
    HTTP_CONNECT_TIMEOUT: float = 5.0
    HTTP_READ_TIMEOUT: float = 30.0
    APP_ENV: str = "dev"

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


class EstagiosPipeline(BaseModel):
    model_config = ConfigDict(frozen=True)

    onboarding: int | None = None
    pendente: int | None = None
    churn: int | None = None


class ConfigSync(BaseModel):
    """Configuração imutável montada uma única vez e repassada a todos os componentes."""

    model_config = ConfigDict(frozen=True)

    pipedrive_domain: str = ""
    pipedrive_token: str = ""
    pipeline_id: int | None = None
    estagios: EstagiosPipeline = Field(default_factory=EstagiosPipeline)
    person_owner_id: int | None = None
    deal_owner_id: int | None = None
    campo_assinatura: str = ""
    campos_extras: dict[str, str] = Field(default_factory=dict)
    moeda: str = "BRL"

    status_criaveis: frozenset[str] = frozenset()
    somente_primeiro_ciclo: bool = False
    somar_um_dia_fechamento: bool = True

    segredo_webhook: str = ""

    klaviyo_api_key: str = ""
    klaviyo_list_id: str = ""
    klaviyo_revision: str = "2024-10-15"

    codigo_pais_padrao: str = "55"
    timeout: tuple[float, float] = (5.0, 30.0)


def _parse_campos_extras(raw: str) -> dict[str, str]:
    texto = (raw or "").strip()
    if not texto:
        return {}
    try:
        data: Any = json.loads(texto)
    except json.JSONDecodeError as e:
        raise ConfigError("DEAL_FIELD_MAP não é JSON válido", code="BAD_FIELD_MAP", cause=e) from e
    if not isinstance(data, dict):
        raise ConfigError("DEAL_FIELD_MAP deve ser um objeto JSON", code="BAD_FIELD_MAP")
    return {str(k).strip(): str(v).strip() for k, v in data.items() if str(k).strip() and v}


def montar_config_sync(settings: Settings) -> ConfigSync:
    """Valida os valores de ambiente e congela tudo em um ConfigSync."""
    status_criaveis = frozenset(
        normalizar_status(s) for s in (settings.ALLOW_CREATE_STATUSES or "").split(",") if s.strip()
    )
    return ConfigSync(
        pipedrive_domain=settings.PIPEDRIVE_DOMAIN.strip(),
        pipedrive_token=settings.PIPEDRIVE_TOKEN.strip(),
        pipeline_id=settings.PIPELINE_ID,
        estagios=EstagiosPipeline(
            onboarding=settings.STAGE_ID_ONBOARD,
            pendente=settings.STAGE_ID_PENDENTE,
            churn=settings.STAGE_ID_CHURN,
        ),
        person_owner_id=settings.PERSON_OWNER_ID,
        deal_owner_id=settings.DEAL_OWNER_ID,
        campo_assinatura=settings.DEAL_FIELD_SUBSCRIPTION.strip(),
        campos_extras=_parse_campos_extras(settings.DEAL_FIELD_MAP),
        moeda=settings.DEAL_CURRENCY.strip() or "BRL",
        status_criaveis=status_criaveis,
        somente_primeiro_ciclo=settings.SOMENTE_PRIMEIRO_CICLO,
        somar_um_dia_fechamento=settings.EXPECTED_CLOSE_SOMAR_UM_DIA,
        segredo_webhook=settings.GURU_API_TOKEN.strip(),
        klaviyo_api_key=settings.KLAVIYO_API_KEY.strip(),
        klaviyo_list_id=settings.KLAVIYO_LIST_ID.strip(),
        klaviyo_revision=settings.KLAVIYO_REVISION.strip() or "2024-10-15",
        codigo_pais_padrao=settings.DEFAULT_COUNTRY_CODE.strip() or "55",
        timeout=(settings.HTTP_CONNECT_TIMEOUT, settings.HTTP_READ_TIMEOUT),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@lru_cache(maxsize=1)
def get_config_sync() -> ConfigSync:
    return montar_config_sync(get_settings())
