# src/bulkwrite_sql/core/derived_table.py
from __future__ import annotations
from typing import Any, Mapping, Sequence

from .dialect import DERIVED_ALIAS, SEQUENCE_COLUMN, Dialect
from .models import ColumnInfo, DerivedTable, SqlParameter

PARAM_PREFIX = "p"


def param_name(row_index: int, col_index: int) -> str:
    return f"{PARAM_PREFIX}{row_index}_{col_index}"


def read_field(row: Any, field_name: str) -> Any:
    """Lê o campo de um registro: Mapping por chave, objeto por atributo. Ausente -> None."""
    if isinstance(row, Mapping):
        return row.get(field_name)
    return getattr(row, field_name, None)


def build_derived_table(columns: Sequence[ColumnInfo], rows: Sequence[Any],
                        dialect: Dialect) -> DerivedTable | None:
    """
    Monta a tabela derivada de um lote:

        (
        SELECT :p0_0 AS `a`, :p0_1 AS `b`, 0 AS `bulk_row_seq`
        UNION ALL SELECT :p1_0 AS `a`, :p1_1 AS `b`, 1 AS `bulk_row_seq`
        ) AS tmp

    Os nomes dos parâmetros só são únicos dentro do lote; a sequência também
    recomeça em 0 a cada lote.
    """
    if not rows:
        return None
    seq = dialect.quote(SEQUENCE_COLUMN)
    parameters: list[SqlParameter] = []
    lines = ["("]
    for row_index, row in enumerate(rows):
        cells = []
        for col_index, column in enumerate(columns):
            name = param_name(row_index, col_index)
            value = column.to_storage(read_field(row, column.ref_name))
            parameters.append(SqlParameter(name, value, column.type_))
            cells.append(f":{name} AS {dialect.quote(column.name)}")
        cells.append(f"{row_index} AS {seq}")
        lines.append(("SELECT " if row_index == 0 else "UNION ALL SELECT ") + ", ".join(cells))
    lines.append(f") AS {DERIVED_ALIAS}")
    return DerivedTable(sql="\n".join(lines), parameters=tuple(parameters))
