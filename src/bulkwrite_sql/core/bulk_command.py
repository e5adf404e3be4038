# src/bulkwrite_sql/core/bulk_command.py
from __future__ import annotations
import logging
from typing import Any, Callable, Iterable, Iterator, Sequence

from ..errors import ConfigurationError
from ..utils.chunking import chunk_split
from .derived_table import build_derived_table
from .dialect import Dialect, MySqlDialect
from .metadata import MetadataRegistry
from .models import BatchData, BulkOption, ColumnInfo, EntityInfo

logger = logging.getLogger(__name__)

# ------------------- Derivação de colunas -------------------


def _warn_unknown(entity: EntityInfo, names: frozenset[str], option_name: str) -> None:
    unknown = sorted(n for n in names if entity.column(n) is None)
    if unknown:
        logger.warning("%s: campos desconhecidos em %s ignorados: %s",
                       entity.table_name, option_name, ", ".join(unknown))


def _named(col: ColumnInfo, names: frozenset[str]) -> bool:
    return col.ref_name in names or col.name in names


def _selected(col: ColumnInfo, ignored: frozenset[str]) -> bool:
    return not _named(col, ignored)


def insert_columns(entity: EntityInfo, option: BulkOption) -> list[ColumnInfo]:
    _warn_unknown(entity, option.ignore_on_insert, "ignore_on_insert")
    return [c for c in entity.columns if not c.skip_insert and _selected(c, option.ignore_on_insert)]


def update_columns(entity: EntityInfo, option: BulkOption) -> list[ColumnInfo]:
    _warn_unknown(entity, option.ignore_on_update, "ignore_on_update")
    return [c for c in entity.columns if not c.skip_update and _selected(c, option.ignore_on_update)]


def key_columns(entity: EntityInfo, option: BulkOption, required: bool = True) -> list[ColumnInfo]:
    """Override explícito de unique_keys manda; senão, colunas de índice único."""
    if option.unique_keys is not None:
        missing = sorted(n for n in option.unique_keys if entity.column(n) is None)
        if missing:
            raise ConfigurationError(
                f"{entity.table_name}: unique_keys com campos inexistentes: {', '.join(missing)}")
        keys = [c for c in entity.columns if _named(c, option.unique_keys)]
    else:
        keys = [c for c in entity.columns if c.is_unique_index]
    if required and not keys:
        raise ConfigurationError(f"{entity.table_name}: nenhuma chave única para o join.")
    return keys


def merge_columns(entity: EntityInfo, option: BulkOption) -> tuple[list[ColumnInfo], list[ColumnInfo]]:
    inserts = insert_columns(entity, option)
    _warn_unknown(entity, option.ignore_on_update, "ignore_on_update")
    updates = [
        c for c in entity.columns
        if not (c.is_primary_key or c.is_unique_index or c.skip_update)
        and _selected(c, option.ignore_on_update)
    ]
    return inserts, updates


def _union(*groups: Sequence[ColumnInfo]) -> list[ColumnInfo]:
    seen: set[str] = set()
    out: list[ColumnInfo] = []
    for group in groups:
        for col in group:
            if col.name not in seen:
                seen.add(col.name)
                out.append(col)
    return out

# ------------------- Geração de lotes -------------------


class BulkCommand:
    """
    Gera os lotes (SQL + parâmetros) de cada operação bulk.

    Cada método valida tudo antes (metadados, colunas, chaves) e só então
    devolve um iterador preguiçoso, um BatchData por lote.
    """
    def __init__(self, registry: MetadataRegistry | None = None, dialect: Dialect | None = None):
        self.registry = registry or MetadataRegistry()
        self.dialect = dialect or MySqlDialect()

    def _prepare(self, items: Iterable[Any], record_type: Any) -> tuple[list[Any], EntityInfo | None]:
        rows = list(items)
        if not rows:
            return rows, None
        entity = self.registry.resolve(record_type if record_type is not None else type(rows[0]))
        return rows, entity

    def _batches(self, rows: list[Any], option: BulkOption, columns: Sequence[ColumnInfo],
                 render: Callable[[str], str], operation: str, table: str) -> Iterator[BatchData]:
        for index, chunk in enumerate(chunk_split(rows, option.batch_size)):
            derived = build_derived_table(columns, chunk, self.dialect)
            batch = BatchData(sql=render(derived.sql), parameters=derived.parameters)
            logger.debug("%s %s: lote %d com %d linhas, %d parâmetros",
                         operation, table, index, len(chunk), len(batch.parameters))
            yield batch

    def insert_batches(self, items: Iterable[Any], option: BulkOption | None = None,
                       record_type: Any = None) -> Iterator[BatchData]:
        option = option or BulkOption()
        rows, entity = self._prepare(items, record_type)
        if entity is None:
            return iter(())
        columns = insert_columns(entity, option)
        if not columns:
            raise ConfigurationError(f"{entity.table_name}: nenhuma coluna para INSERT.")

        def render(derived_sql: str) -> str:
            return self.dialect.insert(entity, columns, derived_sql)

        return self._batches(rows, option, columns, render, "insert", entity.table_name)

    def update_batches(self, items: Iterable[Any], option: BulkOption | None = None,
                       record_type: Any = None) -> Iterator[BatchData]:
        option = option or BulkOption()
        rows, entity = self._prepare(items, record_type)
        if entity is None:
            return iter(())
        columns = update_columns(entity, option)
        keys = key_columns(entity, option)
        set_columns = [c for c in columns if not c.is_primary_key]
        if not set_columns:
            raise ConfigurationError(f"{entity.table_name}: nenhuma coluna para o SET do UPDATE.")
        # chaves fora da seleção (ex.: id gerado) ainda precisam estar na tabela derivada
        derived_columns = _union(columns, keys)

        def render(derived_sql: str) -> str:
            return self.dialect.update(entity, keys, set_columns, derived_sql)

        return self._batches(rows, option, derived_columns, render, "update", entity.table_name)

    def delete_batches(self, items: Iterable[Any], option: BulkOption | None = None,
                       record_type: Any = None) -> Iterator[BatchData]:
        option = option or BulkOption()
        rows, entity = self._prepare(items, record_type)
        if entity is None:
            return iter(())
        keys = key_columns(entity, option)

        def render(derived_sql: str) -> str:
            return self.dialect.delete(entity, keys, derived_sql)

        return self._batches(rows, option, keys, render, "delete", entity.table_name)

    def merge_batches(self, items: Iterable[Any], option: BulkOption | None = None,
                      record_type: Any = None) -> Iterator[BatchData]:
        option = option or BulkOption()
        rows, entity = self._prepare(items, record_type)
        if entity is None:
            return iter(())
        inserts, updates = merge_columns(entity, option)
        if not inserts:
            raise ConfigurationError(f"{entity.table_name}: nenhuma coluna para INSERT.")
        keys = key_columns(entity, option, required=False)
        derived_columns = _union(inserts, updates)
        self.dialect.validate_merge(entity, updates, keys)

        def render(derived_sql: str) -> str:
            return self.dialect.merge(entity, inserts, updates, keys, derived_sql)

        return self._batches(rows, option, derived_columns, render, "merge", entity.table_name)
