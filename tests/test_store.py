import random
import threading

import pytest

from appendstore.page import PAGE_HEADER_SIZE, SLOT_SIZE
from appendstore.store import (
    AppendOnlyStore,
    AppendOnlyStoreError,
    PageNotFoundError,
    PagePool,
    RecordTooLargeError,
)

PAGE_SIZE = 4096
MAX_RECORD = PAGE_SIZE - PAGE_HEADER_SIZE - SLOT_SIZE


def random_kvs(count, key_size=50, val_min=50, val_max=100, seed=7):
    rng = random.Random(seed)
    return [
        (
            rng.randbytes(key_size),
            rng.randbytes(rng.randint(val_min, val_max)),
        )
        for _ in range(count)
    ]


def test_small_append():
    store = AppendOnlyStore(PagePool(PAGE_SIZE))
    store.append(b"small key", b"small value")
    assert list(store.scan()) == [(b"small key", b"small value")]


def test_large_append():
    store = AppendOnlyStore(PagePool(PAGE_SIZE))
    key = bytes(MAX_RECORD + 1)
    value = bytes(MAX_RECORD + 1)
    with pytest.raises(RecordTooLargeError):
        store.append(key, value)
    assert next(store.scan(), None) is None
    assert store.num_kvs() == 0


def test_record_exactly_max_size_fits():
    store = AppendOnlyStore(PagePool(PAGE_SIZE))
    store.append(b"k", bytes(MAX_RECORD - 1))
    assert list(store) == [(b"k", bytes(MAX_RECORD - 1))]


def test_record_too_large_is_store_error():
    store = AppendOnlyStore(PagePool(PAGE_SIZE))
    with pytest.raises(AppendOnlyStoreError):
        store.append(b"", bytes(MAX_RECORD + 1))


def test_page_overflow():
    pool = PagePool(PAGE_SIZE)
    store = AppendOnlyStore(pool)
    key = random.Random(1).randbytes(1000)
    value = random.Random(2).randbytes(1000)
    for _ in range(100):
        store.append(key, value)
    # Two 2000-byte records fit in a 4096-byte page.
    assert store.num_pages() == 49
    assert len(pool) == 51
    assert list(store.scan()) == [(key, value)] * 100


def test_basic_scan():
    store = AppendOnlyStore(PagePool(PAGE_SIZE))
    for _ in range(3):
        store.append(b"scanned key", b"scanned value")
    assert store.num_kvs() == 3
    scanner = store.scan()
    for _ in range(3):
        assert next(scanner) == (b"scanned key", b"scanned value")
    assert next(scanner, None) is None


def test_stress():
    vals = random_kvs(10000)
    store = AppendOnlyStore(PagePool(PAGE_SIZE))
    for key, value in vals:
        store.append(key, value)
    assert store.num_kvs() == 10000
    assert list(store.scan()) == vals


def test_concurrent_append():
    groups = [random_kvs(3334, seed=s) for s in range(3)]
    store = AppendOnlyStore(PagePool(PAGE_SIZE))
    expected = {kv for group in groups for kv in group}

    def worker(items):
        for key, value in items:
            store.append(key, value)

    threads = [threading.Thread(target=worker, args=(g,)) for g in groups]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.num_kvs() == sum(len(g) for g in groups)
    scanned = list(store.scan())
    assert len(scanned) == store.num_kvs()
    for kv in scanned:
        expected.remove(kv)
    assert expected == set()


def test_scan_finish_condition():
    store = AppendOnlyStore(PagePool(PAGE_SIZE))
    assert list(store.scan()) == []


def test_bulk_insert_create():
    vals = random_kvs(10000, seed=11)
    store = AppendOnlyStore.bulk_insert_create(PagePool(PAGE_SIZE), vals)
    assert store.num_kvs() == 10000
    assert list(store.scan()) == vals


def test_durability():
    vals = random_kvs(10000, seed=3)
    pool = PagePool(PAGE_SIZE)
    created = AppendOnlyStore.bulk_insert_create(pool, vals)
    root_id = created.root_id
    del created

    loaded = AppendOnlyStore.load(pool, root_id)
    assert root_id == 0
    assert list(loaded.scan()) == vals


def test_load_continues_appending_to_last_page():
    vals = random_kvs(500, seed=5)
    pool = PagePool(PAGE_SIZE)
    AppendOnlyStore.bulk_insert_create(pool, vals)
    pages_before = len(pool)

    loaded = AppendOnlyStore.load(pool, 0)
    loaded.append(b"new key", b"new value")
    result = list(loaded)
    assert result[:-1] == vals
    assert result[-1] == (b"new key", b"new value")
    assert len(pool) in (pages_before, pages_before + 1)


def test_load_missing_root():
    with pytest.raises(PageNotFoundError):
        AppendOnlyStore.load(PagePool(PAGE_SIZE), 5)


def test_pool_get_missing_page():
    pool = PagePool(PAGE_SIZE)
    pool.create_page()
    with pytest.raises(PageNotFoundError):
        pool.get_page(1)


def test_pool_assigns_sequential_ids():
    pool = PagePool(PAGE_SIZE)
    ids = [pool.create_page().page_id for _ in range(3)]
    assert ids == [0, 1, 2]
    assert pool.get_page(1).size == PAGE_SIZE


def test_pool_rejects_tiny_page_size():
    with pytest.raises(ValueError):
        PagePool(PAGE_HEADER_SIZE)


def test_new_store_uses_root_and_data_page():
    pool = PagePool(PAGE_SIZE)
    store = AppendOnlyStore(pool)
    root = pool.get_page(store.root_id)
    assert root.next_page() == (1, 1)
    assert root.get(0) == (b"", bytes([0, 0, 0, 1, 0, 0, 0, 1]))
    assert store.num_pages() == 0