from typing import List
import weakref

class MemoryManager:
    """Tracks the blobs a backend has handed out so that leaks are observable."""

    def __init__(self):
        self._blob_refs = weakref.WeakSet()
        self._allocated = 0
        self._released = 0

    def register_blob(self, blob: 'Blob') -> None:
        self._blob_refs.add(blob)
        self._allocated += 1

    def release_blob(self, blob: 'Blob') -> None:
        if blob in self._blob_refs:
            self._blob_refs.discard(blob)
            self._released += 1

    def live_blobs(self) -> List['Blob']:
        return [b for b in self._blob_refs if not b.is_released]

    def get_memory_usage(self) -> int:
        return sum(b.nbytes for b in self.live_blobs())

    def release_all(self) -> int:
        blobs = self.live_blobs()
        for blob in blobs:
            blob.shutdown()
        return len(blobs)

    @property
    def stats(self):
        return {'allocated': self._allocated, 'released': self._released,
                'live': len(self.live_blobs())}
