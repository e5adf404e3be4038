# src/bulkwrite_sql/core/selectors.py
from __future__ import annotations
from typing import Any


def _field_name(item: Any) -> str:
    if isinstance(item, str):
        return item
    # InstrumentedAttribute / QueryableAttribute / Column expõem .key
    key = getattr(item, "key", None)
    if isinstance(key, str):
        return key
    raise TypeError(f"Seletor de campo inválido: {item!r}")


def resolve_fields(selector: Any) -> frozenset[str]:
    """
    Converte um seletor declarativo em conjunto de nomes de campo.
    None -> vazio. Aceita nome, atributo mapeado ou iterável desses.
    Não olha dados de linha: é avaliado uma vez por chamada.
    """
    if selector is None:
        return frozenset()
    if isinstance(selector, str) or hasattr(selector, "key"):
        return frozenset({_field_name(selector)})
    try:
        items = iter(selector)
    except TypeError:
        raise TypeError(f"Seletor de campo inválido: {selector!r}") from None
    return frozenset(_field_name(i) for i in items)
