"""In-memory LRU cache for computed embeddings.

Keys hash (model id, normalized text), so editing content naturally misses
the cache. The cache is a read optimization only.
"""

import hashlib
from collections import OrderedDict


def normalize_text(text: str) -> str:
    """Collapse whitespace so formatting-only differences share a key."""
    return " ".join(text.split())


class EmbeddingCache:
    """Bounded LRU map from content hash to vector."""

    def __init__(self, max_entries: int = 2048):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, list[float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(model_id: str, text: str) -> str:
        """Create a hash key for text and model combination."""
        payload = f"{model_id}\x00{normalize_text(text)}".encode("utf-8")
        return hashlib.sha256(payload).hexdigest()

    def get(self, model_id: str, text: str) -> list[float] | None:
        key = self.make_key(model_id, text)
        vector = self._entries.get(key)
        if vector is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return list(vector)

    def put(self, model_id: str, text: str, vector: list[float]) -> None:
        if self.max_entries <= 0:
            return
        key = self.make_key(model_id, text)
        self._entries[key] = list(vector)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, model_id: str, text: str) -> bool:
        return self._entries.pop(self.make_key(model_id, text), None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
