# src/bulkwrite_sql/features/bulk.py
from __future__ import annotations
import logging
import time
from typing import Any, Iterable

import pandas as pd

from ..core.bulk_command import BulkCommand
from ..core.dialect import Dialect, dialect_for
from ..core.executor import BatchExecutor, CancellationToken
from ..core.metadata import MetadataRegistry
from ..core.models import BulkOption
from ..core.ports import Db, DbTransaction

logger = logging.getLogger(__name__)


def records_from_frame(df: pd.DataFrame) -> list[dict]:
    """DataFrame -> lista de dicts, com NaN/NA virando None (NULL no banco)."""
    clean = df.astype(object).where(pd.notna(df), None)
    return clean.to_dict(orient="records")


def _records(items: Iterable[Any] | pd.DataFrame) -> list[Any]:
    if isinstance(items, pd.DataFrame):
        return records_from_frame(items)
    return list(items)


class BulkOperations:
    """
    Fachada das operações bulk: recebe o Db, resolve metadados, gera os lotes
    e executa tudo numa transação.

    Ex.:
        bulk = BulkOperations(db)
        bulk.bulk_merge(products, BulkOption(ignore_on_update={"created_at"}))

        with db.transaction() as tx:
            bulk.bulk_delete(old, transaction=tx)
            bulk.bulk_insert(new, transaction=tx)
    """
    def __init__(self, db: Db, registry: MetadataRegistry | None = None,
                 dialect: Dialect | None = None, default_option: BulkOption | None = None):
        self.db = db
        self.registry = registry or MetadataRegistry()
        self.default_option = default_option or BulkOption()
        self.executor = BatchExecutor(db)
        self._dialect = dialect

    @property
    def dialect(self) -> Dialect:
        if self._dialect is None:
            self._dialect = dialect_for(self.db.dialect_name)
        return self._dialect

    @property
    def command(self) -> BulkCommand:
        return BulkCommand(self.registry, self.dialect)

    # ------------------- Operações -------------------

    def bulk_insert(self, items, option: BulkOption | None = None,
                    transaction: DbTransaction | None = None, *,
                    record_type: Any = None, cancel: CancellationToken | None = None) -> int:
        return self._run("insert", items, option, transaction, record_type, cancel)

    def bulk_update(self, items, option: BulkOption | None = None,
                    transaction: DbTransaction | None = None, *,
                    record_type: Any = None, cancel: CancellationToken | None = None) -> int:
        return self._run("update", items, option, transaction, record_type, cancel)

    def bulk_delete(self, items, option: BulkOption | None = None,
                    transaction: DbTransaction | None = None, *,
                    record_type: Any = None, cancel: CancellationToken | None = None) -> int:
        return self._run("delete", items, option, transaction, record_type, cancel)

    def bulk_merge(self, items, option: BulkOption | None = None,
                   transaction: DbTransaction | None = None, *,
                   record_type: Any = None, cancel: CancellationToken | None = None) -> int:
        """Upsert. No MySQL usa ON DUPLICATE KEY UPDATE."""
        return self._run("merge", items, option, transaction, record_type, cancel)

    def _run(self, operation: str, items, option, transaction, record_type, cancel) -> int:
        option = option or self.default_option
        rows = _records(items)
        if not rows:
            return 0
        generate = getattr(self.command, f"{operation}_batches")
        # ConfigurationError sai daqui, antes de abrir conexão
        batches = generate(rows, option, record_type)

        started = time.perf_counter()
        total = self.executor.run(batches, transaction=transaction,
                                  timeout=option.command_timeout, cancel=cancel)
        logger.info("bulk_%s: %d registros, %d linhas afetadas em %.3fs",
                    operation, len(rows), total, time.perf_counter() - started)
        return total
