"""Concurrency control: keyed locks and optimistic versioned writes."""

from linkgraph.core.concurrency.controller import ConcurrencyController, KeyedLocks

__all__ = [
    "ConcurrencyController",
    "KeyedLocks",
]
