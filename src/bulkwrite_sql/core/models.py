# src/bulkwrite_sql/core/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..errors import ConfigurationError
from .selectors import resolve_fields

DEFAULT_BATCH_SIZE = 200


@dataclass(frozen=True)
class ColumnInfo:
    """Descritor de uma coluna: nome no banco, nome do campo e flags."""
    name: str
    ref_name: str
    is_primary_key: bool = False
    is_unique_index: bool = False
    is_key: bool = False
    is_generated: bool = False
    skip_insert: bool = False
    skip_update: bool = False
    converter: Optional[Callable[[Any], Any]] = field(default=None, compare=False)
    type_: Any = field(default=None, compare=False)  # sqlalchemy TypeEngine, se houver

    def __post_init__(self):
        # coluna gerada nunca entra em INSERT nem UPDATE
        if self.is_generated:
            object.__setattr__(self, "skip_insert", True)
            object.__setattr__(self, "skip_update", True)

    def to_storage(self, value: Any) -> Any:
        if value is None or self.converter is None:
            return value
        return self.converter(value)


@dataclass(frozen=True)
class EntityInfo:
    table_name: str
    schema_name: str | None
    columns: tuple[ColumnInfo, ...]

    def __post_init__(self):
        if not self.table_name:
            raise ConfigurationError("EntityInfo sem nome de tabela.")
        object.__setattr__(self, "columns", tuple(self.columns))

    def column(self, field_name: str) -> ColumnInfo | None:
        """Busca por nome do campo ou, em seguida, pelo nome da coluna."""
        for col in self.columns:
            if col.ref_name == field_name:
                return col
        for col in self.columns:
            if col.name == field_name:
                return col
        return None


@dataclass(frozen=True)
class BulkOption:
    """Opções de uma chamada bulk.

    ignore_on_insert / ignore_on_update / unique_keys aceitam um nome de campo,
    um atributo mapeado (Product.created_at) ou um iterável desses.
    unique_keys=None significa auto: colunas marcadas como índice único.
    """
    batch_size: int = DEFAULT_BATCH_SIZE
    command_timeout: float | None = None
    ignore_on_insert: frozenset[str] = frozenset()
    ignore_on_update: frozenset[str] = frozenset()
    unique_keys: frozenset[str] | None = None

    def __post_init__(self):
        if not isinstance(self.batch_size, int) or self.batch_size < 1:
            raise ConfigurationError(f"batch_size deve ser >= 1 (recebido: {self.batch_size!r}).")
        if self.command_timeout is not None and self.command_timeout <= 0:
            raise ConfigurationError(f"command_timeout deve ser positivo (recebido: {self.command_timeout!r}).")
        object.__setattr__(self, "ignore_on_insert", resolve_fields(self.ignore_on_insert))
        object.__setattr__(self, "ignore_on_update", resolve_fields(self.ignore_on_update))
        if self.unique_keys is not None:
            object.__setattr__(self, "unique_keys", resolve_fields(self.unique_keys))


@dataclass(frozen=True)
class SqlParameter:
    name: str
    value: Any
    type_: Any = field(default=None, compare=False)


@dataclass(frozen=True)
class DerivedTable:
    sql: str
    parameters: tuple[SqlParameter, ...]


@dataclass
class BatchData:
    """SQL de um lote + parâmetros. affected_rows só é preenchido após executar."""
    sql: str
    parameters: tuple[SqlParameter, ...]
    affected_rows: int | None = None
