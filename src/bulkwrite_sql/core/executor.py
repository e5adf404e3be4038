# src/bulkwrite_sql/core/executor.py
from __future__ import annotations
import logging
import threading
from typing import Iterable

from ..errors import CancellationError
from .models import BatchData
from .ports import Db, DbTransaction

logger = logging.getLogger(__name__)


class CancellationToken:
    """Sinal de cancelamento cooperativo, checado só nas fronteiras de I/O."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationError("Operação bulk cancelada.")


def _checkpoint(cancel: CancellationToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()


class BatchExecutor:
    """
    Executa os lotes em sequência numa única conexão/transação.

    Sem transação do chamador, o executor é dono dela: abre, faz commit no
    sucesso, rollback na falha/cancelamento e fecha no final. Com transação
    externa ele só executa; commit/rollback/close ficam com o chamador.
    """
    def __init__(self, db: Db):
        self.db = db

    def run(self, batches: Iterable[BatchData], transaction: DbTransaction | None = None,
            timeout: float | None = None, cancel: CancellationToken | None = None) -> int:
        owns_transaction = transaction is None
        if owns_transaction:
            _checkpoint(cancel)
            transaction = self.db.begin()

        total = 0
        try:
            for index, batch in enumerate(batches):
                _checkpoint(cancel)
                batch.affected_rows = transaction.execute(batch.sql, batch.parameters, timeout=timeout)
                total += batch.affected_rows
                logger.debug("lote %d executado: %d linhas", index, batch.affected_rows)
            if owns_transaction:
                _checkpoint(cancel)
                transaction.commit()
        except BaseException:
            if owns_transaction:
                self._rollback(transaction)
            raise
        finally:
            try:
                # timeout vale só para esta chamada, inclusive em transação externa
                if timeout is not None:
                    transaction.reset_timeout()
            finally:
                if owns_transaction:
                    transaction.close()
        return total

    @staticmethod
    def _rollback(transaction: DbTransaction) -> None:
        try:
            transaction.rollback()
        except Exception:
            # o erro original continua subindo
            logger.exception("Falha no rollback da transação bulk")
