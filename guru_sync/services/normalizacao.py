# guru_sync/services/normalizacao.py
"""
Normalização de campos crus do webhook do Guru.

Todas as funções são puras e totais: entrada ausente ou inválida resolve para um
valor padrão (""/None), nunca para exceção.
"""
from __future__ import annotations

import calendar
import re
from collections.abc import Mapping
from datetime import UTC, date, datetime, time as dtime, timedelta
from typing import Any

from dateutil.parser import ParserError, isoparse
from dateutil.parser import parse as parse_date

from guru_sync.utils.texto import normalizar_status

_RE_NAO_DIGITO = re.compile(r"\D+")
_RE_E164 = re.compile(r"^\+[1-9]\d{7,14}$")
_RE_DATA_PURA = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ============== TEXTO / TELEFONE ==============


def somente_digitos(p: Any) -> str:
    return _RE_NAO_DIGITO.sub("", "" if p is None else str(p))


def to_e164(phone: Any, country_code: str = "55") -> str | None:
    """
    Formata telefone em E.164. Se os dígitos já começarem pelo código do país, usa como está;
    senão prefixa. Retorna None quando o resultado não bate com +[1-9]\\d{7,14}.
    """
    digitos = somente_digitos(phone)
    if not digitos:
        return None
    cc = somente_digitos(country_code)
    if cc and not digitos.startswith(cc):
        digitos = cc + digitos
    candidato = f"+{digitos}"
    return candidato if _RE_E164.match(candidato) else None


# ============== DATAS (UTC) ==============


def _aware_utc(dt_in: datetime) -> datetime:
    if dt_in.tzinfo is None:
        return dt_in.replace(tzinfo=UTC)
    return dt_in.astimezone(UTC)


def parse_data(s: Any) -> datetime | None:
    """
    Converte YYYY-MM-DD (meia-noite UTC), timestamp ISO/livre, date/datetime ou epoch (s/ms)
    em datetime aware UTC. Retorna None se ausente ou inválido.
    """
    if s is None or isinstance(s, bool):
        return None
    if isinstance(s, datetime):
        return _aware_utc(s)
    if isinstance(s, date):
        return datetime.combine(s, dtime.min, tzinfo=UTC)
    if isinstance(s, (int, float)):
        try:
            v = float(s)
            if v > 1e12:  # ms -> s
                v /= 1000.0
            return datetime.fromtimestamp(v, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None

    texto = str(s).strip()
    if not texto:
        return None
    try:
        if _RE_DATA_PURA.match(texto):
            return datetime.combine(date.fromisoformat(texto), dtime.min, tzinfo=UTC)
        try:
            return _aware_utc(isoparse(texto))
        except ValueError:
            return _aware_utc(parse_date(texto))
    except (ParserError, ValueError, OverflowError):
        return None


def add_days(d: datetime, n: int) -> datetime:
    return _aware_utc(d) + timedelta(days=n)


def mesmo_dia_proximo_mes(d: datetime) -> datetime:
    """Mesmo dia no mês seguinte; se o dia não existir lá, usa o último dia do mês (31/01 -> 29/02)."""
    dt_utc = _aware_utc(d)
    ano = dt_utc.year + (1 if dt_utc.month == 12 else 0)
    mes = 1 if dt_utc.month == 12 else dt_utc.month + 1
    ultimo_dia = calendar.monthrange(ano, mes)[1]
    return dt_utc.replace(year=ano, month=mes, day=min(dt_utc.day, ultimo_dia))


def ymd_utc(d: datetime) -> str:
    return _aware_utc(d).date().isoformat()


# ============== CAMINHOS OPCIONAIS NO PAYLOAD ==============


def pegar(evento: Any, *caminho: str) -> Any:
    """Lê evento[a][b][c] tolerando ausência ou sub-objetos que não são dict."""
    atual = evento
    for chave in caminho:
        if not isinstance(atual, Mapping):
            return None
        atual = atual.get(chave)
    return atual


def primeiro_preenchido(*valores: Any) -> Any:
    for v in valores:
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        return v
    return None


_CAMINHOS_FIM_PERIODO: tuple[tuple[str, ...], ...] = (
    ("current_invoice", "period_end"),
    ("last_transaction", "invoice", "period_end"),
    ("dates", "cycle_end_date"),
)

_CAMINHOS_INICIO_CICLO: tuple[tuple[str, ...], ...] = (
    ("current_invoice", "period_start"),
    ("last_transaction", "invoice", "period_start"),
    ("dates", "cycle_start_date"),
    ("dates", "started_at"),
)


def _primeira_data(evento: Mapping[str, Any], caminhos: tuple[tuple[str, ...], ...]) -> datetime | None:
    for caminho in caminhos:
        d = parse_data(pegar(evento, *caminho))
        if d is not None:
            return d
    return None


def resolver_expected_close_date(
    evento: Mapping[str, Any],
    *,
    hoje: datetime | None = None,
    somar_um_dia: bool = True,
) -> str:
    """
    Data prevista de fechamento (YYYY-MM-DD, UTC):
      a) fim do período (fatura atual → fatura da última transação → cycle_end_date) [+1 dia]
      b) mesmo dia do mês seguinte ao início do ciclo
      c) hoje + 30 dias
    """
    fim = _primeira_data(evento, _CAMINHOS_FIM_PERIODO)
    if fim is not None:
        return ymd_utc(add_days(fim, 1) if somar_um_dia else fim)

    inicio = _primeira_data(evento, _CAMINHOS_INICIO_CICLO)
    if inicio is not None:
        return ymd_utc(mesmo_dia_proximo_mes(inicio))

    base = hoje or datetime.now(UTC)
    return ymd_utc(add_days(base, 30))


__all__ = [
    "add_days",
    "mesmo_dia_proximo_mes",
    "normalizar_status",
    "parse_data",
    "pegar",
    "primeiro_preenchido",
    "resolver_expected_close_date",
    "somente_digitos",
    "to_e164",
    "ymd_utc",
]
