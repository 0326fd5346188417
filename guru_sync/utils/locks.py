# guru_sync/utils/locks.py
from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from guru_sync.common.logging_setup import get_logger

logger = get_logger(__name__)


class LockPorChave:
    """
    Um `threading.Lock` por chave, criado sob demanda e descartado quando ninguém mais o usa.

    Serializa o "busca → cria" do mesmo subscription_code dentro de um processo.
    Entre processos/hosts diferentes não há garantia.
    """

    def __init__(self) -> None:
        self._guarda = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._usos: dict[str, int] = {}

    @contextmanager
    def travar(self, chave: str) -> Iterator[None]:
        with self._guarda:
            lock = self._locks.setdefault(chave, threading.Lock())
            self._usos[chave] = self._usos.get(chave, 0) + 1
            concorrente = self._usos[chave] > 1

        if concorrente:
            logger.info("lock_aguardando", extra={"chave": chave})
        try:
            with lock:
                yield
        finally:
            with self._guarda:
                self._usos[chave] -= 1
                if self._usos[chave] == 0:
                    del self._usos[chave]
                    del self._locks[chave]

    def __len__(self) -> int:
        with self._guarda:
            return len(self._locks)
