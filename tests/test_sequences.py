"""
Test suite for human-readable reference numbers
"""

import threading
from datetime import date

from asset_finance.sequences import StorageSequenceGenerator
from asset_finance.storage import InMemoryStorage


class TestStorageSequenceGenerator:
    """Test loan and payment number generation"""

    def setup_method(self):
        self.sequences = StorageSequenceGenerator(InMemoryStorage())

    def test_format(self):
        """Test reference number format"""
        assert self.sequences.next_value("LN", date(2026, 3, 1)) == "LN2026000001"
        assert self.sequences.next_value("LN", date(2026, 3, 1)) == "LN2026000002"

    def test_counters_are_per_prefix(self):
        """Test counters are kept per prefix"""
        self.sequences.next_value("LN", date(2026, 3, 1))

        assert self.sequences.next_value("PAY", date(2026, 3, 1)) == "PAY2026000001"

    def test_counter_restarts_each_year(self):
        """Test counters restart each year"""
        self.sequences.next_value("LN", date(2026, 12, 31))

        assert self.sequences.next_value("LN", date(2027, 1, 1)) == "LN2027000001"

    def test_padding(self):
        """Test configurable zero padding"""
        sequences = StorageSequenceGenerator(InMemoryStorage(), padding=4)

        assert sequences.next_value("LN", date(2026, 1, 1)) == "LN20260001"

    def test_concurrent_callers_get_distinct_numbers(self):
        """Test concurrent callers get distinct numbers"""
        values = []
        lock = threading.Lock()

        def take():
            for _ in range(20):
                value = self.sequences.next_value("PAY", date(2026, 1, 1))
                with lock:
                    values.append(value)

        threads = [threading.Thread(target=take) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(values) == 100
        assert len(set(values)) == 100
