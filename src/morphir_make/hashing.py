"""Hashing utilities for content-based change detection."""

import hashlib


def compute_content_digest(data: bytes) -> str:
    """Compute SHA256 digest of in-memory bytes.

    Simple byte-for-byte hashing - any change invalidates the digest.

    Args:
        data: Raw file content

    Returns:
        SHA256 digest in format "sha256:xxxx"
    """
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


__all__ = [
    "compute_content_digest",
]
