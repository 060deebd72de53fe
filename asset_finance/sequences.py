"""
Sequence Generator Module

Human-readable numbers for loans (``LN2026000001``) and payments
(``PAY2026000001``). Counters restart every calendar year.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from .storage import StorageInterface


class SequenceGenerator(ABC):
    """Source of unique, human-readable reference numbers"""

    @abstractmethod
    def next_value(self, prefix: str) -> str:
        """Return the next reference for ``prefix``"""
        pass


class StorageSequenceGenerator(SequenceGenerator):
    """
    Counter per prefix and year kept in the storage backend

    Increments go through ``compare_and_set`` so two callers never receive
    the same number.
    """

    def __init__(self, storage: StorageInterface, padding: int = 6,
                 table_name: str = "sequences"):
        self.storage = storage
        self.padding = padding
        self.table_name = table_name

    def next_value(self, prefix: str, on_date: Optional[date] = None) -> str:
        year = (on_date or date.today()).year
        key = f"{prefix}:{year}"

        while True:
            record = self.storage.load(self.table_name, key)
            if record is None:
                with self.storage.atomic():
                    if not self.storage.exists(self.table_name, key):
                        self.storage.save(self.table_name, key, {"id": key, "value": 1})
                        value = 1
                        break
                continue

            current = record["value"]
            if self.storage.compare_and_set(
                self.table_name, key, {"value": current}, {"value": current + 1}
            ) is not None:
                value = current + 1
                break

        return f"{prefix}{year}{value:0{self.padding}d}"
