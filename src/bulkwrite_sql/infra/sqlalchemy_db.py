# src/bulkwrite_sql/infra/sqlalchemy_db.py
from __future__ import annotations
import logging
import math
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection, Engine, Transaction
from sqlalchemy.exc import SQLAlchemyError

from ..core.models import SqlParameter
from ..core.ports import Db, TransactionState
from ..errors import ExecutionError

logger = logging.getLogger(__name__)


def _statement(sql: str, parameters: Sequence[SqlParameter]):
    stmt = text(sql)
    # tipo da coluna mapeada -> bind processing do SQLAlchemy (Enum, Uuid, JSON...)
    typed = [bindparam(p.name, type_=p.type_) for p in parameters if p.type_ is not None]
    if typed:
        stmt = stmt.bindparams(*typed)
    return stmt


# ---------------- Limite de espera da sessão (command_timeout) ----------------
_MYSQL_FAMILY = ("mysql", "mariadb")


def _supports_session_wait(dialect: str) -> bool:
    return dialect in _MYSQL_FAMILY or dialect == "sqlite"


def _native_wait(dialect: str, timeout: float) -> int:
    """Segundos -> unidade da sessão: segundos inteiros no MySQL, ms no SQLite."""
    if dialect in _MYSQL_FAMILY:
        return max(1, math.ceil(timeout))
    return int(timeout * 1000)


def _read_session_wait(conn: Connection) -> int:
    if conn.dialect.name in _MYSQL_FAMILY:
        return int(conn.execute(text("SELECT @@SESSION.innodb_lock_wait_timeout")).scalar())
    return int(conn.exec_driver_sql("PRAGMA busy_timeout").scalar())


def _write_session_wait(conn: Connection, value: int) -> None:
    if conn.dialect.name in _MYSQL_FAMILY:
        conn.execute(text("SET SESSION innodb_lock_wait_timeout = :t"), {"t": value})
    else:
        conn.exec_driver_sql(f"PRAGMA busy_timeout = {int(value)}")


class SqlAlchemyTransaction:
    """Conexão + transação do SQLAlchemy vistas pela porta DbTransaction."""

    def __init__(self, conn: Connection, tx: Transaction | None, owns_connection: bool):
        self._conn = conn
        self._tx = tx
        self._owns_connection = owns_connection
        self._timeout: float | None = None
        self._saved_wait: int | None = None
        self.state = TransactionState.ACTIVE

    @property
    def connection(self) -> Connection:
        return self._conn

    # ---------------- Execuções ----------------

    def execute(self, sql: str, parameters: Sequence[SqlParameter],
                timeout: float | None = None) -> int:
        try:
            self._apply_timeout(timeout)
            res = self._conn.execute(_statement(sql, parameters), {p.name: p.value for p in parameters})
        except SQLAlchemyError as exc:
            raise ExecutionError(f"Falha ao executar lote: {exc}", sql=sql) from exc
        return max(res.rowcount or 0, 0)

    def _apply_timeout(self, timeout: float | None) -> None:
        if timeout is None or timeout == self._timeout:
            return
        dialect = self._conn.dialect.name
        if _supports_session_wait(dialect):
            if self._saved_wait is None:
                # valor da sessão antes da chamada; volta em reset_timeout()
                self._saved_wait = _read_session_wait(self._conn)
            _write_session_wait(self._conn, _native_wait(dialect, timeout))
        else:
            logger.debug("command_timeout ignorado no dialeto %s", dialect)
        self._timeout = timeout

    def reset_timeout(self) -> None:
        """Devolve à sessão o limite de espera que ela tinha antes do primeiro command_timeout."""
        saved, self._saved_wait, self._timeout = self._saved_wait, None, None
        if saved is None:
            return
        try:
            _write_session_wait(self._conn, saved)
        except SQLAlchemyError:
            logger.warning("Falha ao restaurar o limite de espera da sessão", exc_info=True)
            if self._owns_connection:
                # não devolve ao pool uma conexão com o limite da chamada
                self._conn.invalidate()

    # ---------------- Ciclo de vida ----------------

    def commit(self) -> None:
        if self.state is not TransactionState.ACTIVE:
            raise RuntimeError(f"commit em transação {self.state.value}")
        if self._tx is not None:
            self._tx.commit()
        else:
            self._conn.commit()
        self.state = TransactionState.COMMITTED

    def rollback(self) -> None:
        if self.state is not TransactionState.ACTIVE:
            return
        try:
            if self._tx is not None:
                self._tx.rollback()
            else:
                self._conn.rollback()
        finally:
            self.state = TransactionState.ROLLED_BACK

    def close(self) -> None:
        if self._tx is not None:
            self._tx.close()  # ainda ativa -> rollback implícito
        if self._owns_connection:
            self.reset_timeout()
            self._conn.close()

    def query_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict]:
        res = self._conn.execute(text(sql), params or {})
        return [dict(r) for r in res.mappings().all()]


class SqlAlchemyDb(Db):
    def __init__(self, engine_provider: Callable[[], Engine]):
        self._engine_provider = engine_provider

    @property
    def engine(self) -> Engine:
        return self._engine_provider()

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def begin(self) -> SqlAlchemyTransaction:
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as exc:
            raise ExecutionError(f"Falha ao abrir conexão: {exc}") from exc
        try:
            tx = conn.begin()
        except SQLAlchemyError as exc:
            conn.close()
            raise ExecutionError(f"Falha ao iniciar transação: {exc}") from exc
        return SqlAlchemyTransaction(conn, tx, owns_connection=True)

    def adopt(self, conn: Connection) -> SqlAlchemyTransaction:
        """Embrulha uma conexão do chamador; commit/rollback continuam com ele."""
        return SqlAlchemyTransaction(conn, None, owns_connection=False)

    # ------------ transação externa (compartilhada entre várias chamadas) ------------
    @contextmanager
    def transaction(self) -> Iterator[SqlAlchemyTransaction]:
        tx = self.begin()
        try:
            yield tx
            tx.commit()
        except BaseException:
            tx.rollback()
            raise
        finally:
            tx.close()

    def query_all(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict]:
        with self.engine.connect() as conn:
            res = conn.execute(text(sql), params or {})
            return [dict(r) for r in res.mappings().all()]
