from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime

import pytest
from sqlalchemy import DateTime, Float, Integer, String, create_engine, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from bulkwrite_sql.core.metadata import MetadataRegistry
from bulkwrite_sql.core.models import ColumnInfo, EntityInfo
from bulkwrite_sql.core.ports import TransactionState
from bulkwrite_sql.errors import ExecutionError
from bulkwrite_sql.features.bulk import BulkOperations
from bulkwrite_sql.infra.sqlalchemy_db import SqlAlchemyDb


class Base(DeclarativeBase):
    pass


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sku: Mapped[str] = mapped_column(String(32), unique=True)
    name: Mapped[str] = mapped_column(String(100))
    price: Mapped[float] = mapped_column(Float)
    created_at: Mapped[datetime | None] = mapped_column(DateTime, server_default=func.current_timestamp())


# ------------------- registro "à mão" no formato MySQL -------------------

@dataclass
class Item:
    Id: str
    CreatedAt: str
    Name: str
    Price: float


ITEM_ENTITY = EntityInfo(
    table_name="Products",
    schema_name=None,
    columns=(
        ColumnInfo("Id", "Id", is_primary_key=True, is_unique_index=True, is_key=True),
        ColumnInfo("CreatedAt", "CreatedAt"),
        ColumnInfo("Name", "Name"),
        ColumnInfo("Price", "Price"),
    ),
)


@pytest.fixture
def registry() -> MetadataRegistry:
    reg = MetadataRegistry()
    reg.register(Item, ITEM_ENTITY)
    return reg


@pytest.fixture
def item() -> Item:
    return Item(Id="a1", CreatedAt="2024-01-01 00:00:00", Name="Test", Price=123.45)


# ------------------- SQLite em memória -------------------

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    # só products: os modelos dos testes de metadados usam schema próprio
    Product.__table__.create(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine) -> SqlAlchemyDb:
    return SqlAlchemyDb(engine_provider=lambda: engine)


@pytest.fixture
def bulk(db) -> BulkOperations:
    return BulkOperations(db)


def make_products(n: int, price: float = 10.0) -> list[Product]:
    return [Product(sku=f"SKU-{i:03d}", name=f"Produto {i}", price=price + i) for i in range(n)]


# ------------------- Db falso para o executor -------------------

class FakeTransaction:
    def __init__(self, calls: list, fail_on: int | None = None, rows_per_batch: int = 1):
        self.calls = calls
        self.fail_on = fail_on
        self.rows_per_batch = rows_per_batch
        self.executed = 0
        self.state = TransactionState.ACTIVE

    def execute(self, sql, parameters, timeout=None):
        self.calls.append(("execute", sql, timeout))
        if self.executed == self.fail_on:
            raise ExecutionError("boom", sql=sql)
        self.executed += 1
        return self.rows_per_batch

    def reset_timeout(self):
        self.calls.append(("reset_timeout",))

    def commit(self):
        self.calls.append(("commit",))
        self.state = TransactionState.COMMITTED

    def rollback(self):
        self.calls.append(("rollback",))
        self.state = TransactionState.ROLLED_BACK

    def close(self):
        self.calls.append(("close",))


class FakeDb:
    dialect_name = "mysql"

    def __init__(self, fail_on: int | None = None, rows_per_batch: int = 1):
        self.calls: list = []
        self.fail_on = fail_on
        self.rows_per_batch = rows_per_batch
        self.transactions: list[FakeTransaction] = []

    def begin(self) -> FakeTransaction:
        self.calls.append(("begin",))
        tx = FakeTransaction(self.calls, self.fail_on, self.rows_per_batch)
        self.transactions.append(tx)
        return tx

    def transaction(self):
        raise NotImplementedError

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]
