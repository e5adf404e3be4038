# src/bulkwrite_sql/errors.py
from __future__ import annotations


class BulkOperationError(Exception):
    """Base de todos os erros do bulkwrite_sql."""


class ConfigurationError(BulkOperationError, ValueError):
    """Tipo não mapeado, tabela sem nome, chave vazia, opção inválida.

    Sempre levantado antes de gerar qualquer SQL.
    """


class ExecutionError(BulkOperationError):
    """Falha ao executar um lote. O erro do driver fica em __cause__."""

    def __init__(self, message: str, sql: str | None = None):
        super().__init__(message)
        self.sql = sql


class CancellationError(BulkOperationError):
    """Cancelamento cooperativo observado numa fronteira de I/O."""
