"""In-flight tracking for words dispatched to fill workers."""

import threading
from typing import Iterable, List, Set, TypeVar

from .storage import Item

T = TypeVar("T", bound=Item)


class InFlightTracker:
    """
    Set of word ids currently claimed by a dispatched-but-unfinished unit
    of work.

    The producer claims ids right before queueing them and a worker releases
    its id once the word is persisted or given up on. A later poll can then
    skip words whose analysis has not been written yet.
    """

    def __init__(self):
        self._ids: Set[int] = set()
        self.lock = threading.Lock()

    def claim(self, items: Iterable[T]) -> List[T]:
        """
        Mark untracked items as in flight.

        Returns:
            The items that were not already tracked, in input order
        """
        claimed = []
        with self.lock:
            for item in items:
                if item.id not in self._ids:
                    self._ids.add(item.id)
                    claimed.append(item)
        return claimed

    def release(self, item_id: int) -> None:
        with self.lock:
            self._ids.discard(item_id)

    def __contains__(self, item_id: int) -> bool:
        with self.lock:
            return item_id in self._ids

    def __len__(self) -> int:
        with self.lock:
            return len(self._ids)
