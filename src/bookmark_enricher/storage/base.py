"""Abstract base class for bookmark record stores."""

from abc import ABC, abstractmethod

from .models import BookmarkRecord


class RecordStore(ABC):
    """Keyed persistent storage for bookmark records."""

    @abstractmethod
    def get(self, bookmark_id: str) -> BookmarkRecord | None:
        """Return the record with this id, or None."""
        pass

    @abstractmethod
    def upsert(self, record: BookmarkRecord) -> None:
        """Insert or fully replace one record."""
        pass

    @abstractmethod
    def bulk_upsert(self, records: list[BookmarkRecord]) -> None:
        """Insert or replace many records in one transaction."""
        pass

    @abstractmethod
    def query_all(self) -> list[BookmarkRecord]:
        """Return every stored record."""
        pass
