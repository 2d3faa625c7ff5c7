# Processed-Order Window - bounded in-memory dedup of printed order ids
# Guards against reprinting orders the server still lists as pending

from collections import OrderedDict
from typing import Iterator, List, Optional

DEFAULT_CAPACITY = 100


class ProcessedOrderWindow:
    """Insertion-ordered set of order ids, evicting the oldest past capacity.

    Not persisted: a restart clears it and the server's pending filter
    takes over.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._ids: 'OrderedDict[str, None]' = OrderedDict()

    def __contains__(self, order_id: str) -> bool:
        return order_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def add(self, order_id: str) -> Optional[str]:
        """Insert order_id; returns the evicted id, if any. Re-adding is a no-op."""
        if order_id in self._ids:
            return None
        self._ids[order_id] = None
        if len(self._ids) > self.capacity:
            evicted, _ = self._ids.popitem(last=False)
            return evicted
        return None

    def clear(self):
        self._ids.clear()

    def snapshot(self) -> List[str]:
        """Ids oldest first"""
        return list(self._ids)


if __name__ == '__main__':
    window = ProcessedOrderWindow(capacity=3)
    for oid in ['A', 'B', 'C', 'D']:
        evicted = window.add(oid)
        print(f"add {oid} -> evicted {evicted}, window {window.snapshot()}")
