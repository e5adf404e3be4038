# src/bulkwrite_sql/core/ports.py
from __future__ import annotations
from contextlib import AbstractContextManager
from enum import Enum
from typing import Protocol, Sequence

from .models import SqlParameter


class TransactionState(str, Enum):
    NO_TRANSACTION = "no_transaction"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class DbTransaction(Protocol):
    state: TransactionState

    def execute(self, sql: str, parameters: Sequence[SqlParameter],
                timeout: float | None = None) -> int:
        """DML parametrizado. Retorna rowcount."""
        ...

    def reset_timeout(self) -> None:
        """Desfaz o timeout aplicado por execute(); a conexão volta ao padrão do provider."""
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def close(self) -> None:
        """Libera a transação e fecha a conexão, se foi ela quem abriu."""
        ...


class Db(Protocol):
    @property
    def dialect_name(self) -> str:
        """Nome do dialeto do SQLAlchemy (mysql, mariadb, sqlite...)."""
        ...

    def begin(self) -> DbTransaction:
        """Abre conexão + transação. Quem chama é dono e deve commit/rollback/close."""
        ...

    def transaction(self) -> AbstractContextManager[DbTransaction]:
        """Contexto transacional externo: with db.transaction() as tx: ..."""
        ...
