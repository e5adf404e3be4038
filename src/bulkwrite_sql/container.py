# src/bulkwrite_sql/container.py
from .config import BulkConfig
from .engine import default_engine_provider
from .features.bulk import BulkOperations
from .infra.sqlalchemy_db import SqlAlchemyDb

db = SqlAlchemyDb(engine_provider=default_engine_provider)
bulk = BulkOperations(db, default_option=BulkConfig().default_option())
