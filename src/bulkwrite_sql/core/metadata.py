# src/bulkwrite_sql/core/metadata.py
from __future__ import annotations
import logging
from typing import Any

from sqlalchemy import Column, PrimaryKeyConstraint, Table, UniqueConstraint
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable

from ..errors import ConfigurationError
from .models import ColumnInfo, EntityInfo

logger = logging.getLogger(__name__)

# Column(..., info={"bulk_converter": fn}) -> conversão valor em memória -> valor no banco
CONVERTER_INFO_KEY = "bulk_converter"


def _unique_column_names(table: Table) -> set[str]:
    """
    Colunas de UNIQUE constraint / índice único. Sem nenhum deles, a PK faz
    o papel de chave única (o banco sempre a sustenta com um índice).
    """
    names: set[str] = set()
    for cons in table.constraints:
        if isinstance(cons, UniqueConstraint):
            names.update(c.name for c in cons.columns)
    for idx in table.indexes:
        if idx.unique:
            names.update(c.name for c in idx.columns)
    names.update(c.name for c in table.columns if c.unique)
    if not names:
        for cons in table.constraints:
            if isinstance(cons, PrimaryKeyConstraint):
                names.update(c.name for c in cons.columns)
    return names


def _is_generated(column: Column, table: Table) -> bool:
    if column.computed is not None or column.identity is not None:
        return True
    return table.autoincrement_column is column


def entity_info_from_mapped(orm_class: type) -> EntityInfo:
    """Lê o mapeamento declarativo do SQLAlchemy e devolve um EntityInfo imutável."""
    try:
        mapper = sa_inspect(orm_class)
    except NoInspectionAvailable:
        raise ConfigurationError(f"Tipo '{getattr(orm_class, '__name__', orm_class)}' não é mapeado.") from None

    table = mapper.local_table
    if not isinstance(table, Table) or not table.name:
        raise ConfigurationError(f"Não foi possível resolver a tabela de '{orm_class.__name__}'.")

    unique = _unique_column_names(table)
    columns = []
    for prop in mapper.column_attrs:
        col = prop.columns[0]
        if not isinstance(col, Column) or col.table is not table:
            continue  # column_property de expressão, herança etc.
        is_pk = bool(col.primary_key)
        is_unique = col.name in unique
        columns.append(ColumnInfo(
            name=col.name,
            ref_name=prop.key,
            is_primary_key=is_pk,
            is_unique_index=is_unique,
            is_key=is_pk or is_unique,
            is_generated=_is_generated(col, table),
            converter=col.info.get(CONVERTER_INFO_KEY),
            type_=col.type,
        ))
    return EntityInfo(table_name=table.name, schema_name=table.schema, columns=tuple(columns))


class MetadataRegistry:
    """
    Resolve tipo de registro -> EntityInfo. Aceita registro explícito ou
    classes mapeadas no SQLAlchemy (resolvidas sob demanda e guardadas).
    """
    def __init__(self):
        self._entities: dict[Any, EntityInfo] = {}

    def register(self, record_type: Any, entity: EntityInfo) -> None:
        self._entities[record_type] = entity

    def register_mapped(self, orm_class: type) -> EntityInfo:
        entity = entity_info_from_mapped(orm_class)
        self._entities[orm_class] = entity
        return entity

    def resolve(self, record_type: Any) -> EntityInfo:
        if isinstance(record_type, EntityInfo):
            return record_type
        entity = self._entities.get(record_type)
        if entity is not None:
            return entity
        if isinstance(record_type, type):
            try:
                sa_inspect(record_type)
            except NoInspectionAvailable:
                pass
            else:
                logger.debug("Resolvendo metadados do mapeamento de %s", record_type.__name__)
                return self.register_mapped(record_type)
        name = getattr(record_type, "__name__", repr(record_type))
        raise ConfigurationError(f"Não foi possível resolver o tipo '{name}' no registro de metadados.")

    def __contains__(self, record_type: Any) -> bool:
        return record_type in self._entities
