# guru_sync/utils/texto.py
from __future__ import annotations

from typing import Any

from unidecode import unidecode


def normalizar_status(s: Any) -> str:
    """Minúsculas, sem acento e sem espaços nas pontas; None vira ""."""
    if s is None:
        return ""
    return unidecode(str(s)).lower().strip()
