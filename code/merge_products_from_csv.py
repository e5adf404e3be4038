# code/merge_products_from_csv.py
import os
import pandas as pd
from sqlalchemy import Column, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import declarative_base

from bulkwrite_sql.config import BulkConfig, configure_logging
from bulkwrite_sql.container import bulk, db
from bulkwrite_sql.core.models import BulkOption

# =========================
# CONFIGURE AQUI 👇
CSV_PATH      = r"/data/raw/products.csv"   # colunas: sku,name,price
SEP           = ","
ENCODING      = "utf-8"
DECIMAL       = "."
BATCH_SIZE    = 500
# =========================

Base = declarative_base()


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, autoincrement=True)
    sku = Column(String(64), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(19, 6), nullable=False)
    created_at = Column(DateTime, server_default=func.now())


def main():
    if not os.path.exists(CSV_PATH):
        raise FileNotFoundError(CSV_PATH)

    configure_logging(BulkConfig())
    Base.metadata.create_all(db.engine)

    df = pd.read_csv(CSV_PATH, sep=SEP, encoding=ENCODING, decimal=DECIMAL, low_memory=False)
    option = BulkOption(batch_size=BATCH_SIZE, ignore_on_insert={"created_at"},
                        ignore_on_update={"created_at"})
    rows = bulk.bulk_merge(df, option, record_type=Product)
    print(f"Merge concluído: {rows} linhas afetadas")
    print("count:", db.query_all("SELECT COUNT(*) AS cnt FROM products")[0]["cnt"])


if __name__ == "__main__":
    main()
