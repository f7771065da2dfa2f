"""Handle -> channel id resolution cache."""

from __future__ import annotations

import threading


class ResolutionCache:
    """In-process handle resolution cache.

    Entries never expire: a handle resolves to the same channel id for the
    lifetime of the process. Concurrent writes for one handle store the same
    value, so the last write wins.
    """

    def __init__(self, seed: dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self._ids: dict[str, str] = {}
        for handle, channel_id in (seed or {}).items():
            self.put(handle, channel_id)

    def get(self, handle: str) -> str | None:
        return self._ids.get(_key(handle))

    def put(self, handle: str, channel_id: str) -> None:
        with self._lock:
            self._ids[_key(handle)] = channel_id

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, handle: object) -> bool:
        return isinstance(handle, str) and _key(handle) in self._ids


def _key(handle: str) -> str:
    return handle.strip().lstrip("@").lower()
