import json
import threading

import pytest

from config import Settings
from database import JsonFileStore, MemoryStore, MongoStore, SqlStore, create_store, serialize_doc
from errors import StoreUnavailable, ValidationFailure


@pytest.fixture(params=["memory", "file", "sql"])
def record_store(request, tmp_path):
    if request.param == "memory":
        s = MemoryStore()
    elif request.param == "file":
        s = JsonFileStore(str(tmp_path / "data"))
    else:
        s = SqlStore(f"sqlite:///{tmp_path / 'shop.db'}")
    s.init()
    yield s
    s.close()


def test_put_then_get(record_store):
    record_store.put("product", "prod_1", {"id": "prod_1", "name": "Ring", "price": 100})
    assert record_store.get("product", "prod_1") == {"id": "prod_1", "name": "Ring", "price": 100}
    assert record_store.get("product", "missing") is None


def test_put_overwrites(record_store):
    record_store.put("product", "prod_1", {"id": "prod_1", "price": 100})
    record_store.put("product", "prod_1", {"id": "prod_1", "price": 200})
    assert record_store.get("product", "prod_1")["price"] == 200
    assert len(record_store.list("product")) == 1


def test_list_keeps_insertion_order_per_kind(record_store):
    for i in range(3):
        record_store.put("order", f"ORD{i}", {"id": f"ORD{i}", "userId": "u1" if i != 1 else "u2"})
    record_store.put("product", "prod_1", {"id": "prod_1"})
    assert [o["id"] for o in record_store.list("order")] == ["ORD0", "ORD1", "ORD2"]
    assert [o["id"] for o in record_store.find("order", userId="u1")] == ["ORD0", "ORD2"]


def test_delete_is_idempotent(record_store):
    record_store.put("product", "prod_1", {"id": "prod_1"})
    record_store.delete("product", "prod_1")
    record_store.delete("product", "prod_1")
    record_store.delete("product", "never-existed")
    assert record_store.get("product", "prod_1") is None


def test_memory_store_returns_copies():
    s = MemoryStore()
    s.put("product", "prod_1", {"id": "prod_1", "tags": ["a"]})
    s.get("product", "prod_1")["tags"].append("b")
    assert s.get("product", "prod_1")["tags"] == ["a"]


def test_file_store_layout(tmp_path):
    s = JsonFileStore(str(tmp_path))
    s.init()
    s.put("product", "prod_1", {"id": "prod_1", "name": "Ring"})
    for name in ("products.json", "orders.json", "users.json", "discounts.json"):
        assert (tmp_path / name).exists()
    assert json.loads((tmp_path / "products.json").read_text()) == [{"id": "prod_1", "name": "Ring"}]


def test_file_store_degrades_to_empty_on_corrupt_file(tmp_path):
    s = JsonFileStore(str(tmp_path))
    s.init()
    (tmp_path / "products.json").write_text("{not json")
    assert s.list("product") == []


def test_file_store_refuses_to_write_over_unreadable_file(tmp_path):
    s = JsonFileStore(str(tmp_path))
    s.init()
    s.put("product", "prod_1", {"id": "prod_1", "name": "Ring"})
    (tmp_path / "products.json").write_text("{not json")

    with pytest.raises(StoreUnavailable):
        s.put("product", "prod_2", {"id": "prod_2", "name": "Chain"})
    with pytest.raises(StoreUnavailable):
        s.delete("product", "prod_1")
    with pytest.raises(StoreUnavailable):
        s.get("product", "prod_1")
    assert (tmp_path / "products.json").read_text() == "{not json"


def test_file_store_treats_missing_file_as_empty(tmp_path):
    s = JsonFileStore(str(tmp_path))
    s.init()
    (tmp_path / "orders.json").unlink()
    assert s.get("order", "ORD1") is None
    s.put("order", "ORD1", {"id": "ORD1"})
    assert s.list("order") == [{"id": "ORD1"}]


def test_file_store_concurrent_puts_keep_every_record(tmp_path):
    s = JsonFileStore(str(tmp_path))
    s.init()

    def writer(n):
        for i in range(25):
            record_id = f"prod_{n}_{i}"
            s.put("product", record_id, {"id": record_id})

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(s.list("product")) == 200
    assert not list(tmp_path.glob("*.tmp"))


def test_sql_store_enforces_unique_user_email(tmp_path):
    s = SqlStore(f"sqlite:///{tmp_path / 'shop.db'}")
    s.init()
    s.put("user", "u1", {"id": "u1", "email": "a@x.com"})
    with pytest.raises(ValidationFailure):
        s.put("user", "u2", {"id": "u2", "email": "a@x.com"})
    s.close()


def test_serialize_doc_maps_mongo_id():
    assert serialize_doc({"_id": "prod_1", "name": "Ring"}) == {"id": "prod_1", "name": "Ring"}
    assert serialize_doc(None) is None


@pytest.mark.parametrize(
    "kwargs,expected",
    [
        ({"store_backend": "memory"}, MemoryStore),
        ({"store_backend": "file", "data_dir": "somewhere"}, JsonFileStore),
        ({"store_backend": None, "database_url": ""}, JsonFileStore),
        ({"store_backend": None, "database_url": "mongodb://localhost:27017"}, MongoStore),
        ({"store_backend": None, "database_url": "postgresql://shop@localhost/shop"}, SqlStore),
    ],
)
def test_create_store_picks_backend(monkeypatch, kwargs, expected):
    monkeypatch.delenv("STORE_BACKEND", raising=False)
    assert isinstance(create_store(Settings(**kwargs)), expected)


def test_create_store_rejects_unknown_backend():
    with pytest.raises(ValueError):
        create_store(Settings(store_backend="redis"))
