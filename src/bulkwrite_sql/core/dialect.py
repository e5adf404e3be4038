# src/bulkwrite_sql/core/dialect.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Sequence

from ..errors import ConfigurationError
from .models import ColumnInfo, EntityInfo

# coluna extra da tabela derivada, só para ordenar as linhas do lote
SEQUENCE_COLUMN = "bulk_row_seq"
DERIVED_ALIAS = "tmp"
TARGET_ALIAS = "tb"


class Dialect(ABC):
    """
    Quoting + templates de statement. A derivação de colunas/chaves fica em
    bulk_command; aqui só muda a sintaxe.
    """
    name: str
    quote_char = '"'

    def quote(self, name: str) -> str:
        q = self.quote_char
        return f"{q}{name.replace(q, q + q)}{q}"

    def table_ref(self, entity: EntityInfo) -> str:
        if entity.schema_name:
            return f"{self.quote(entity.schema_name)}.{self.quote(entity.table_name)}"
        return self.quote(entity.table_name)

    def column_list(self, columns: Sequence[ColumnInfo]) -> str:
        return ", ".join(self.quote(c.name) for c in columns)

    def insert(self, entity: EntityInfo, columns: Sequence[ColumnInfo], derived_sql: str) -> str:
        cols = self.column_list(columns)
        return "\n".join([
            f"INSERT INTO {self.table_ref(entity)}",
            f"({cols})",
            f"SELECT {cols}",
            f"FROM {derived_sql}",
            f"ORDER BY {self.quote(SEQUENCE_COLUMN)}",
        ])

    @abstractmethod
    def update(self, entity: EntityInfo, keys: Sequence[ColumnInfo],
               set_columns: Sequence[ColumnInfo], derived_sql: str) -> str:
        ...

    @abstractmethod
    def delete(self, entity: EntityInfo, keys: Sequence[ColumnInfo], derived_sql: str) -> str:
        ...

    @abstractmethod
    def merge(self, entity: EntityInfo, insert_columns: Sequence[ColumnInfo],
              update_columns: Sequence[ColumnInfo], keys: Sequence[ColumnInfo],
              derived_sql: str) -> str:
        ...

    def validate_merge(self, entity: EntityInfo, update_columns: Sequence[ColumnInfo],
                       keys: Sequence[ColumnInfo]) -> None:
        """Checa se o merge é expressável neste dialeto. Levanta ConfigurationError se não for."""

    def _join_predicate(self, left: str, keys: Sequence[ColumnInfo], first: str) -> list[str]:
        lines = []
        for i, key in enumerate(keys):
            col = self.quote(key.name)
            lines.append(f"{first if i == 0 else 'AND'} {left}.{col} = {DERIVED_ALIAS}.{col}")
        return lines

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name='{self.name}'>"


class MySqlDialect(Dialect):
    name = "mysql"
    quote_char = "`"

    def update(self, entity, keys, set_columns, derived_sql):
        sets = [f"{TARGET_ALIAS}.{self.quote(c.name)} = {DERIVED_ALIAS}.{self.quote(c.name)}"
                for c in set_columns]
        return "\n".join([
            f"UPDATE {self.table_ref(entity)} AS {TARGET_ALIAS}",
            f"INNER JOIN {derived_sql}",
            *self._join_predicate(TARGET_ALIAS, keys, "ON"),
            "SET " + ",\n".join(sets),
        ])

    def delete(self, entity, keys, derived_sql):
        return "\n".join([
            f"DELETE {TARGET_ALIAS}",
            f"FROM {self.table_ref(entity)} AS {TARGET_ALIAS}",
            f"INNER JOIN {derived_sql}",
            *self._join_predicate(TARGET_ALIAS, keys, "ON"),
        ])

    def merge(self, entity, insert_columns, update_columns, keys, derived_sql):
        table = self.table_ref(entity)
        cols = self.column_list(insert_columns)
        if update_columns:
            sets = [f"{table}.{self.quote(c.name)} = {DERIVED_ALIAS}.{self.quote(c.name)}"
                    for c in update_columns]
        else:
            # nada para sobrescrever: atribuição neutra mantém a linha existente
            noop = self.quote((keys or insert_columns)[0].name)
            sets = [f"{table}.{noop} = {table}.{noop}"]
        return "\n".join([
            f"INSERT INTO {table}",
            f"({cols})",
            f"SELECT {cols}",
            f"FROM {derived_sql}",
            "ON DUPLICATE KEY UPDATE",
            ",\n".join(sets),
        ])


class SqliteDialect(Dialect):
    name = "sqlite"
    quote_char = '"'

    def update(self, entity, keys, set_columns, derived_sql):
        sets = [f"{self.quote(c.name)} = {DERIVED_ALIAS}.{self.quote(c.name)}" for c in set_columns]
        return "\n".join([
            f"UPDATE {self.table_ref(entity)} AS {TARGET_ALIAS}",
            "SET " + ",\n".join(sets),
            f"FROM {derived_sql}",
            *self._join_predicate(TARGET_ALIAS, keys, "WHERE"),
        ])

    def delete(self, entity, keys, derived_sql):
        table = self.table_ref(entity)
        return "\n".join([
            f"DELETE FROM {table}",
            "WHERE EXISTS (",
            "SELECT 1",
            f"FROM {derived_sql}",
            *self._join_predicate(table, keys, "WHERE"),
            ")",
        ])

    def validate_merge(self, entity, update_columns, keys):
        if update_columns and not keys:
            raise ConfigurationError(
                f"SQLite exige chave de conflito para merge em '{entity.table_name}'.")

    def merge(self, entity, insert_columns, update_columns, keys, derived_sql):
        self.validate_merge(entity, update_columns, keys)
        cols = self.column_list(insert_columns)
        lines = [
            f"INSERT INTO {self.table_ref(entity)}",
            f"({cols})",
            f"SELECT {cols}",
            f"FROM {derived_sql}",
            # sem WHERE o parser confunde ON CONFLICT com cláusula de join
            "WHERE true",
        ]
        if not update_columns:
            lines.append("ON CONFLICT DO NOTHING")
            return "\n".join(lines)
        sets = [f"{self.quote(c.name)} = excluded.{self.quote(c.name)}" for c in update_columns]
        lines.append(f"ON CONFLICT ({self.column_list(keys)}) DO UPDATE SET")
        lines.append(",\n".join(sets))
        return "\n".join(lines)


_DIALECTS: dict[str, type[Dialect]] = {
    "mysql": MySqlDialect,
    "mariadb": MySqlDialect,
    "sqlite": SqliteDialect,
}


def dialect_for(name: str) -> Dialect:
    """Mapeia o nome do dialeto do SQLAlchemy (engine.dialect.name) para o nosso."""
    try:
        return _DIALECTS[name.lower()]()
    except KeyError:
        raise ConfigurationError(
            f"Dialeto '{name}' não suportado. Disponíveis: {', '.join(sorted(_DIALECTS))}"
        ) from None
