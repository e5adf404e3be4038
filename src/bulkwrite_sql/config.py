from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field

import dotenv
from sqlalchemy.engine import URL

from .core.models import DEFAULT_BATCH_SIZE, BulkOption

dotenv.load_dotenv()


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


def _optional_float(raw: str) -> float | None:
    return float(raw) if raw.strip() else None


@dataclass
class BulkConfig:
    url: str = field(default_factory=lambda: _env("BULK_DB_URL"))
    host: str = field(default_factory=lambda: _env("MYSQL_HOST", "localhost"))
    port: str = field(default_factory=lambda: _env("MYSQL_PORT", "3306"))
    database: str = field(default_factory=lambda: _env("MYSQL_DATABASE", ""))
    username: str = field(default_factory=lambda: _env("MYSQL_USERNAME", "root"))
    password: str = field(default_factory=lambda: _env("MYSQL_PASSWORD", ""))
    batch_size: int = field(default_factory=lambda: int(_env("BULK_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))))
    command_timeout: float | None = field(default_factory=lambda: _optional_float(_env("BULK_COMMAND_TIMEOUT")))
    log_level: str = field(default_factory=lambda: _env("BULK_LOG_LEVEL", "INFO").upper())

    def sqlalchemy_url(self) -> str | URL:
        if self.url:
            # URL completa (ex.: sqlite:///local.db) tem prioridade
            return self.url
        return URL.create(
            "mysql+pymysql",
            username=self.username or None,
            password=self.password or None,
            host=self.host,
            port=int(self.port) if self.port else None,
            database=self.database or None,
            query={"charset": "utf8mb4"},
        )

    def default_option(self) -> BulkOption:
        return BulkOption(batch_size=self.batch_size, command_timeout=self.command_timeout)


def configure_logging(cfg: BulkConfig | None = None) -> None:
    """Só para scripts; a biblioteca em si nunca mexe em handlers."""
    cfg = cfg or BulkConfig()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
