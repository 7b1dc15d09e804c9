from .sorted_set_store import InMemorySortedSetStore

__all__ = ["InMemorySortedSetStore"]
