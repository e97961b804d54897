from __future__ import annotations

import hashlib


class ContentHasher:
    """SHA-256 fingerprint used to detect unchanged files between syncs."""

    def hash_bytes(self, data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()
