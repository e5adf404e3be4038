from __future__ import annotations
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from .config import BulkConfig

_engine: Engine | None = None


def get_engine(cfg: BulkConfig | None = None) -> Engine:
    global _engine
    if _engine is None:
        cfg = cfg or BulkConfig()
        _engine = create_engine(cfg.sqlalchemy_url(), pool_pre_ping=True, future=True)
    return _engine


def default_engine_provider() -> Engine:
    return get_engine()
