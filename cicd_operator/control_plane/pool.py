"""
Ordered Pool

Identity-indexed container of job nodes kept in comparator order.
The scheduler keeps two of these (pending and running) inside a JobPool.
"""
import bisect
import functools
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from .models import IntegrationJob


@dataclass(frozen=True)
class JobNode:
    """Lightweight reference to an IntegrationJob held by a pool."""
    namespace: str
    name: str
    created_at: datetime
    job_id: str = ""

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_job(cls, job: IntegrationJob) -> "JobNode":
        return cls(
            namespace=job.namespace,
            name=job.name,
            created_at=job.created_at,
            job_id=job.id,
        )


# Returns True when the first node must be placed before the second
Comparator = Callable[[JobNode, JobNode], bool]


def created_before(a: JobNode, b: JobNode) -> bool:
    """Default comparator: older jobs first."""
    return a.created_at < b.created_at


class OrderedPool:
    """
    Nodes ordered by a less-than comparator, at most one per identity.

    Ties (neither node before the other) are broken by the identity string,
    so iteration order is total and reproducible across passes and restarts.
    Operations never raise; removing a missing identity is a no-op.
    """

    def __init__(self, less: Comparator = created_before):
        self._less = less
        self._items: List[JobNode] = []
        self._index: Dict[str, JobNode] = {}
        self._sort_key = functools.cmp_to_key(self._compare)

    def _compare(self, a: JobNode, b: JobNode) -> int:
        if self._less(a, b):
            return -1
        if self._less(b, a):
            return 1
        if a.key < b.key:
            return -1
        if a.key > b.key:
            return 1
        return 0

    def sync(self, node: JobNode) -> bool:
        """
        Insert or reposition ``node``.

        Returns True when the pool content changed: a new identity, or an
        existing identity whose node (and so possibly its position) differs.
        """
        old = self._index.get(node.key)
        if old == node:
            return False
        if old is not None:
            self._discard(old)
        bisect.insort(self._items, node, key=self._sort_key)
        self._index[node.key] = node
        return True

    def remove(self, key: str) -> bool:
        """Remove the node with identity ``key``. Returns True if one was present."""
        node = self._index.get(key)
        if node is None:
            return False
        self._discard(node)
        return True

    def _discard(self, node: JobNode) -> None:
        # Equal-comparing neighbours are impossible: ties fall back to the unique key
        i = bisect.bisect_left(self._items, self._sort_key(node), key=self._sort_key)
        del self._items[i]
        del self._index[node.key]

    def get(self, key: str) -> Optional[JobNode]:
        return self._index.get(key)

    def head(self) -> Optional[JobNode]:
        """First node in order, or None when empty."""
        return self._items[0] if self._items else None

    def keys(self) -> List[str]:
        return [node.key for node in self._items]

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __len__(self) -> int:
        return len(self._index)

    def __iter__(self) -> Iterator[JobNode]:
        # Iterate over a snapshot so a pass can mutate the pool while walking it
        snapshot = list(self._items)
        return iter(snapshot)
