# src/bulkwrite_sql/utils/chunking.py
from __future__ import annotations
from itertools import islice
from typing import Iterable, Iterator, TypeVar

T = TypeVar("T")


def chunk_split(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """
    Quebra em lotes contíguos de `size` itens, mantendo a ordem.
    Só o último lote pode ser menor.
    """
    if size < 1:
        raise ValueError(f"size deve ser >= 1 (recebido: {size}).")
    it = iter(items)
    while True:
        chunk = list(islice(it, size))
        if not chunk:
            return
        yield chunk
