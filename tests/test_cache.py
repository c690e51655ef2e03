import datetime as dt
import json
from decimal import Decimal
from pathlib import Path

import pytest

from db.client import reset_engine
from order_ledger.cache import JsonFileCache, load_all, open_cache, save_all
from order_ledger.codec import CollectionKind
from order_ledger.config import LedgerSettings
from order_ledger.errors import CacheError, ConfigurationError
from order_ledger.models import Customer, Expense, FetchedCollections, Order, OrderStatus
from order_ledger.persistence import SqlCache
from tests.helpers.db import bootstrap_sqlite_db

COLLECTIONS = FetchedCollections(
    orders=(
        Order(
            id="o1",
            customer_name="Asha",
            customer_phone="5550100",
            cake_type="Truffle",
            price=Decimal("42.50"),
            cake_image="data:image/png;base64,AAAA",
            due_date=dt.date(2025, 5, 12),
            status=OrderStatus.READY,
            is_eggless=True,
        ),
    ),
    customers=(Customer(id="c1", name="Asha", phone="5550100", first_order_date=dt.date(2025, 5, 1)),),
    expenses=(Expense(id="e1", description="Flour", amount=Decimal("9.99"), category="Ingredients"),),
)


@pytest.fixture
def sqlite_url(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")
    yield url
    reset_engine()


@pytest.fixture
def sql_cache(sqlite_url: str) -> SqlCache:
    return SqlCache(database_url=sqlite_url)


def test_json_cache_roundtrip_uses_camel_case_records():
    cache = JsonFileCache()
    save_all(cache, COLLECTIONS)

    assert load_all(cache) == COLLECTIONS
    raw = json.loads((cache.directory / "orders.json").read_text(encoding="utf-8"))
    assert raw[0]["customerName"] == "Asha"
    assert raw[0]["cakeImage"] == "data:image/png;base64,AAAA"
    assert raw[0]["dueDate"] == "2025-05-12"


def test_json_cache_root_follows_env(tmp_path, monkeypatch):
    monkeypatch.setenv("ORDER_LEDGER_CACHE_DIR", str(tmp_path / "elsewhere"))
    assert JsonFileCache().directory == (tmp_path / "elsewhere" / "ledger").resolve()


def test_json_cache_missing_and_corrupt_blobs_read_as_empty():
    cache = JsonFileCache()
    assert load_all(cache) == FetchedCollections((), (), ())

    cache.directory.mkdir(parents=True)
    (cache.directory / "orders.json").write_text("{not json", encoding="utf-8")
    (cache.directory / "expenses.json").write_text('[{"id": "e1", "amount": "1"}]', encoding="utf-8")

    assert cache.read(CollectionKind.ORDERS) == ()
    assert cache.read(CollectionKind.EXPENSES) == ()


def test_json_cache_write_failure_raises_cache_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file where the cache dir should be", encoding="utf-8")
    cache = JsonFileCache(blocker)

    with pytest.raises(CacheError):
        cache.write(CollectionKind.ORDERS, COLLECTIONS.orders)


def test_sql_cache_roundtrip_and_overwrite(sql_cache):
    assert load_all(sql_cache) == FetchedCollections((), (), ())

    save_all(sql_cache, COLLECTIONS)
    assert load_all(sql_cache) == COLLECTIONS

    sql_cache.write(CollectionKind.ORDERS, ())
    assert sql_cache.read(CollectionKind.ORDERS) == ()
    assert sql_cache.read(CollectionKind.CUSTOMERS) == COLLECTIONS.customers


def test_backends_store_the_same_payload(sql_cache, sqlite_url):
    from db.client import session_scope
    from db.models.ledger import OlCacheEntry

    json_cache = JsonFileCache()
    json_cache.write(CollectionKind.EXPENSES, COLLECTIONS.expenses)
    sql_cache.write(CollectionKind.EXPENSES, COLLECTIONS.expenses)

    with session_scope(database_url=sqlite_url) as session:
        row = session.get(OlCacheEntry, "expenses")
        assert row is not None
        assert row.item_count == 1
        payload = row.payload

    assert json.loads(payload) == json.loads((json_cache.directory / "expenses.json").read_text("utf-8"))


def test_open_cache_selects_backend(tmp_path):
    assert isinstance(open_cache(LedgerSettings(cache_dir=tmp_path)), JsonFileCache)
    assert isinstance(
        open_cache(LedgerSettings(cache_backend="db", database_url="sqlite+pysqlite:///x.db")), SqlCache
    )
    with pytest.raises(ConfigurationError):
        open_cache(LedgerSettings(cache_backend="db"))
