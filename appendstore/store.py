"""A chain of append-only pages holding key/value records in insertion order.

The pages form a one-way linked list. The first page is the root page; it
points at the first data page and holds one record whose value locates the
last page of the chain, so that appends can go straight to it.

    [Root Page] -> [Page 1] -> [Page 2] -> ... -> [Last Page]
         |                                             ^
         -----------------------------------------------
"""

from __future__ import annotations

import struct
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Tuple

from appendstore.page import (
    DEFAULT_PAGE_SIZE,
    PAGE_HEADER_SIZE,
    SLOT_SIZE,
    AppendOnlyPage,
)

_LOCATION = struct.Struct(">II")


class AppendOnlyStoreError(Exception):
    """Base class for errors raised by the append-only store."""


class RecordTooLargeError(AppendOnlyStoreError):
    """The key and value together do not fit in an empty page."""


class PageNotFoundError(AppendOnlyStoreError):
    """The requested page does not exist in the pool."""


class PagePool:
    """An in-memory set of pages of one size, addressed by page id.

    Each page lives in its own frame, so a page's frame id equals its page id.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size < PAGE_HEADER_SIZE + SLOT_SIZE:
            raise ValueError(
                f"page size must be at least {PAGE_HEADER_SIZE + SLOT_SIZE}, got {page_size}"
            )
        self.page_size = page_size
        self._pages: Dict[int, AppendOnlyPage] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pages)

    def create_page(self) -> AppendOnlyPage:
        """Allocate a new, uninitialised page with the next free id."""
        with self._lock:
            page_id = len(self._pages)
            page = AppendOnlyPage(page_id, self.page_size)
            self._pages[page_id] = page
            return page

    def get_page(self, page_id: int) -> AppendOnlyPage:
        """Return the page with this id; raise PageNotFoundError if absent."""
        try:
            return self._pages[page_id]
        except KeyError:
            raise PageNotFoundError(f"page {page_id} does not exist") from None

    @staticmethod
    def _frame_id(page: AppendOnlyPage) -> int:
        return page.page_id


@dataclass(frozen=True)
class _PageKey:
    page_id: int
    frame_id: int

    def to_bytes(self) -> bytes:
        return _LOCATION.pack(self.page_id, self.frame_id)

    @classmethod
    def from_bytes(cls, data: bytes) -> "_PageKey":
        return cls(*_LOCATION.unpack(data[: _LOCATION.size]))


class AppendOnlyStore:
    """Append-only key/value storage spread over a chain of pages.

    Appends are serialised by a lock; it is not tuned for parallel writers.
    Record and page counts are runtime statistics and are not persisted.
    """

    def __init__(self, pool: PagePool) -> None:
        self.pool = pool
        root_page = pool.create_page()
        root_page.init()
        data_page = pool.create_page()
        data_page.init()
        data_key = _PageKey(data_page.page_id, PagePool._frame_id(data_page))

        root_page.set_next_page(data_key.page_id, data_key.frame_id)
        if not root_page.append(b"", data_key.to_bytes()):
            raise AppendOnlyStoreError("root page cannot hold the last-page record")

        self._setup(pool, root_page.page_id, data_key)

    def _setup(self, pool: PagePool, root_id: int, last_key: _PageKey) -> None:
        self.pool = pool
        self.root_id = root_id
        self._last_key = last_key
        self._lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._num_recs = 0
        self._num_pages = 0

    @classmethod
    def load(cls, pool: PagePool, root_id: int) -> "AppendOnlyStore":
        """Open an existing store whose root page has the given id."""
        root_page = pool.get_page(root_id)
        _, location = root_page.get(0)
        store = cls.__new__(cls)
        store._setup(pool, root_id, _PageKey.from_bytes(location))
        return store

    @classmethod
    def bulk_insert_create(
        cls, pool: PagePool, items: Iterable[Tuple[bytes, bytes]]
    ) -> "AppendOnlyStore":
        """Create a store and append every ``(key, value)`` pair in order."""
        store = cls(pool)
        for key, value in items:
            store.append(key, value)
        return store

    def num_kvs(self) -> int:
        """Number of records appended since this store object was made."""
        return self._num_recs

    def num_pages(self) -> int:
        """Number of pages added to the chain since this store object was made."""
        return self._num_pages

    def _max_record_size(self) -> int:
        return self.pool.page_size - PAGE_HEADER_SIZE - SLOT_SIZE

    def append(self, key: bytes, value: bytes) -> None:
        """Append a record to the last page, extending the chain when it is full."""
        if len(key) + len(value) > self._max_record_size():
            raise RecordTooLargeError(
                f"record of {len(key) + len(value)} bytes exceeds the limit of "
                f"{self._max_record_size()} bytes"
            )
        with self._stats_lock:
            self._num_recs += 1

        with self._lock:
            last_page = self.pool.get_page(self._last_key.page_id)
            if last_page.append(key, value):
                return

            new_page = self.pool.create_page()
            new_page.init()
            new_key = _PageKey(new_page.page_id, PagePool._frame_id(new_page))

            last_page.set_next_page(new_key.page_id, new_key.frame_id)
            self.pool.get_page(self.root_id).set_val(0, new_key.to_bytes())

            with self._stats_lock:
                self._num_pages += 1
            self._last_key = new_key

            if not new_page.append(key, value):
                raise AppendOnlyStoreError("record does not fit in a fresh page")

    def scan(self) -> Iterator[Tuple[bytes, bytes]]:
        """Yield every ``(key, value)`` pair in the order it was appended."""
        root_page = self.pool.get_page(self.root_id)
        location = root_page.next_page()
        if location is None:
            return
        page = self.pool.get_page(location[0])
        while True:
            for slot_id in range(page.slot_count()):
                yield page.get(slot_id)
            location = page.next_page()
            if location is None:
                return
            page = self.pool.get_page(location[0])

    def __iter__(self) -> Iterator[Tuple[bytes, bytes]]:
        return self.scan()