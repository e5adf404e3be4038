import pandas as pd
import pytest

from bulkwrite_sql.core.dialect import MySqlDialect, SqliteDialect, dialect_for
from bulkwrite_sql.core.executor import CancellationToken
from bulkwrite_sql.core.models import BulkOption
from bulkwrite_sql.core.ports import TransactionState
from bulkwrite_sql.errors import CancellationError, ConfigurationError, ExecutionError
from bulkwrite_sql.features.bulk import BulkOperations, records_from_frame

from conftest import FakeDb, Product, make_products


def _rows(db, sql="SELECT sku, name, price FROM products ORDER BY sku"):
    return db.query_all(sql)


def _count(db) -> int:
    return db.query_all("SELECT COUNT(*) AS cnt FROM products")[0]["cnt"]


def test_dialect_resolved_from_engine(bulk):
    assert isinstance(bulk.dialect, SqliteDialect)
    assert isinstance(dialect_for("MariaDB"), MySqlDialect)
    with pytest.raises(ConfigurationError):
        dialect_for("oracle")


def test_insert_round_trip(bulk, db):
    items = make_products(5)

    affected = bulk.bulk_insert(items, BulkOption(batch_size=2))

    assert affected == 5
    assert _rows(db) == [{"sku": p.sku, "name": p.name, "price": p.price} for p in items]


def test_insert_ignoring_created_at_uses_server_default(bulk, db):
    bulk.bulk_insert(make_products(2))
    bulk.bulk_insert([Product(sku="X", name="x", price=1.0)],
                     BulkOption(ignore_on_insert=[Product.created_at]))

    rows = _rows(db, "SELECT sku, created_at FROM products ORDER BY sku")
    assert [r["created_at"] is None for r in rows] == [True, True, False]


def test_update_by_natural_key(bulk, db):
    bulk.bulk_insert(make_products(3))
    changed = [Product(sku=f"SKU-{i:03d}", name=f"Novo {i}", price=99.0) for i in range(2)]

    affected = bulk.bulk_update(changed, BulkOption(ignore_on_update={"created_at"}))

    assert affected == 2
    assert [r["name"] for r in _rows(db)] == ["Novo 0", "Novo 1", "Produto 2"]


def test_update_by_primary_key_override(bulk, db):
    bulk.bulk_insert(make_products(2))
    ids = {r["sku"]: r["id"] for r in _rows(db, "SELECT id, sku FROM products")}
    renamed = [Product(id=ids["SKU-001"], sku="SKU-NEW", name="renomeado", price=5.0)]

    bulk.bulk_update(renamed, BulkOption(unique_keys={"id"}, ignore_on_update={"created_at"}))

    assert [r["sku"] for r in _rows(db)] == ["SKU-000", "SKU-NEW"]


def test_delete(bulk, db):
    bulk.bulk_insert(make_products(4))

    affected = bulk.bulk_delete(make_products(4)[1:3], BulkOption(batch_size=1))

    assert affected == 2
    assert [r["sku"] for r in _rows(db)] == ["SKU-000", "SKU-003"]


def test_merge_inserts_then_updates(bulk, db):
    bulk.bulk_insert(make_products(2))
    incoming = make_products(3, price=50.0)

    bulk.bulk_merge(incoming, BulkOption(ignore_on_insert={"created_at"}, ignore_on_update={"created_at"}))

    assert _count(db) == 3
    assert [r["price"] for r in _rows(db)] == [50.0, 51.0, 52.0]


def test_merge_is_idempotent(bulk, db):
    items = make_products(4)
    option = BulkOption(batch_size=3, ignore_on_update={"created_at"})

    bulk.bulk_merge(items, option)
    first = _rows(db)
    bulk.bulk_merge(items, option)

    assert _count(db) == 4
    assert _rows(db) == first


def test_failed_batch_rolls_back_whole_call(bulk, db):
    items = make_products(3) + [Product(sku="SKU-000", name="dup", price=0.0)]

    with pytest.raises(ExecutionError) as exc_info:
        bulk.bulk_insert(items, BulkOption(batch_size=1))

    assert exc_info.value.__cause__ is not None
    assert "INSERT INTO" in exc_info.value.sql
    assert _count(db) == 0


def test_external_transaction_spans_calls_and_rolls_back_with_caller(bulk, db):
    with pytest.raises(RuntimeError):
        with db.transaction() as tx:
            bulk.bulk_insert(make_products(2), transaction=tx)
            bulk.bulk_merge(make_products(3), transaction=tx)
            assert tx.state is TransactionState.ACTIVE
            assert tx.query_all("SELECT COUNT(*) AS cnt FROM products")[0]["cnt"] == 3
            raise RuntimeError("aborta")

    assert _count(db) == 0


def test_external_transaction_not_rolled_back_by_engine(bulk, db):
    with db.transaction() as tx:
        bulk.bulk_insert(make_products(1), transaction=tx)
        with pytest.raises(ExecutionError):
            bulk.bulk_insert(make_products(1), transaction=tx)
        assert tx.state is TransactionState.ACTIVE

    # o chamador decidiu commitar: a primeira chamada ficou
    assert _count(db) == 1


def test_adopted_connection(bulk, db, engine):
    with engine.begin() as conn:
        bulk.bulk_insert(make_products(2), transaction=db.adopt(conn))
    assert _count(db) == 2


def _busy_timeout(conn) -> int:
    return conn.exec_driver_sql("PRAGMA busy_timeout").scalar()


def test_command_timeout_reaches_connection_and_is_restored(db):
    tx = db.begin()
    try:
        default = _busy_timeout(tx.connection)
        tx.execute("DELETE FROM products", (), timeout=0.25)
        assert _busy_timeout(tx.connection) == 250
        tx.reset_timeout()
        assert _busy_timeout(tx.connection) == default
    finally:
        tx.rollback()
        tx.close()


def test_command_timeout_does_not_leak_into_later_calls(bulk, engine):
    with engine.connect() as conn:
        default = _busy_timeout(conn)
    assert default != 250

    affected = bulk.bulk_insert(make_products(2), BulkOption(command_timeout=0.25))
    bulk.bulk_delete(make_products(1))

    assert affected == 2
    with engine.connect() as conn:
        assert _busy_timeout(conn) == default


def test_command_timeout_scoped_to_call_in_external_transaction(bulk, db):
    seen = []

    with db.transaction() as tx:
        default = _busy_timeout(tx.connection)

        class RecordingToken(CancellationToken):
            # checado antes de cada lote: o segundo já vê o timeout da chamada
            def raise_if_cancelled(self):
                seen.append(_busy_timeout(tx.connection))
                super().raise_if_cancelled()

        bulk.bulk_insert(make_products(2), BulkOption(batch_size=1, command_timeout=0.25),
                         transaction=tx, cancel=RecordingToken())
        assert _busy_timeout(tx.connection) == default

    assert seen == [default, 250]
    assert _count(db) == 2


def test_cancelled_call_leaves_nothing(bulk, db):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(CancellationError):
        bulk.bulk_insert(make_products(2), cancel=token)
    assert _count(db) == 0


def test_dataframe_and_dict_records(bulk, db):
    df = pd.DataFrame({"sku": ["A", "B"], "name": ["a", None], "price": [1.5, float("nan")]})

    with pytest.raises(ConfigurationError):
        bulk.bulk_insert(df)
    with pytest.raises(ExecutionError):
        # name/price são NOT NULL
        bulk.bulk_insert(df, record_type=Product)

    bulk.bulk_insert(df.iloc[:1], record_type=Product)
    bulk.bulk_insert([{"sku": "C", "name": "c", "price": 3.0}], record_type=Product)
    assert [r["sku"] for r in _rows(db)] == ["A", "C"]


def test_records_from_frame_maps_nan_to_none():
    df = pd.DataFrame({"a": [1.0, float("nan")], "b": ["x", None]})
    assert records_from_frame(df) == [{"a": 1.0, "b": "x"}, {"a": None, "b": None}]


def test_empty_input_opens_no_connection():
    fake = FakeDb()
    assert BulkOperations(fake).bulk_insert([]) == 0
    assert fake.calls == []


def test_default_option_comes_from_facade():
    fake = FakeDb()
    bulk = BulkOperations(fake, default_option=BulkOption(batch_size=2))

    bulk.bulk_delete(make_products(5), record_type=Product)

    assert fake.names() == ["begin", "execute", "execute", "execute", "commit", "close"]
