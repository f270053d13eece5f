# appendstore

A small append-only key-value store. Records are kept in fixed-size slotted
pages that are linked into a chain, starting from a root page that also
remembers where the last page of the chain is. New records always go to the
last page; when that page is full, a new page is added to the chain.

## Installing

```
pip install .
```

For running the tests:

```
pip install .[test]
pytest
```

## Pages

`appendstore.page.AppendOnlyPage` is one slotted page backed by a
`bytearray`. The header holds the next page in the chain, the number of bytes
used, the slot count and where the record area starts, all as big-endian
unsigned 32-bit integers. Slots grow from the front of the page and records
from the back.

```python
from appendstore.page import AppendOnlyPage

page = AppendOnlyPage(page_id=0, size=4096)
page.init()

page.append(b"key", b"value")      # True if the record fit, False otherwise
page.get(0)                        # (b"key", b"value")
page.slot_count()                  # 1
page.total_free_space()
page.max_record_size()             # size minus header and one slot
page.next_page()                   # None until set_next_page() is called
page.set_next_page(7, 7)
page.next_page()                   # (7, 7)
```

When `append` returns `False` the page is left unchanged. `get` raises
`IndexError` for a slot that does not exist, and `slot(slot_id)` returns
`None` for one. `set_val(slot_id, value)` overwrites a stored value in place;
the new value must be the same length as the old one, or `ValueError` is
raised. `Slot` is the dataclass describing where a record lives, with
`to_bytes()` and `Slot.from_bytes(data)`.

## The store

`appendstore.store.AppendOnlyStore` keeps its pages in a `PagePool`.

```python
from appendstore.store import AppendOnlyStore, PagePool, RecordTooLargeError

pool = PagePool(page_size=4096)
store = AppendOnlyStore(pool)

store.append(b"alpha", b"1")
store.append(b"beta", b"2")

store.num_kvs()        # 2
list(store.scan())     # [(b"alpha", b"1"), (b"beta", b"2")]

for key, value in store:
    ...

try:
    store.append(b"x" * 5000, b"")
except RecordTooLargeError:
    ...
```

Records come back from a scan in the order they were appended. A record larger
than a single page can hold raises `RecordTooLargeError`, a subclass of
`AppendOnlyStoreError`; asking the pool for a page it does not have raises
`PageNotFoundError`. `num_pages()` counts the pages added to the chain after
the first data page. Both counts cover only what was appended through this
store object.

A store can be built straight from an iterable of pairs with
`AppendOnlyStore.bulk_insert_create(pool, items)`, and an existing chain in the
same pool can be opened again with `AppendOnlyStore.load(pool, root_id)`; the
root page of a store created on a fresh pool has id 0.

Appends are serialised with a lock, so several threads may append to the same
store at once.

## What it does not do

Pages live only in memory inside a `PagePool`. There is no buffer pool, no
eviction and no writing of pages to disk, so a store does not survive the end
of the process. There is no command-line tool or server; the package is a
library only.