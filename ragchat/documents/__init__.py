"""Document list caching and upload validation."""

from ragchat.documents.cache import (
    ACCEPTED_FILE_TYPES,
    CACHE_TTL_SECONDS,
    MAX_FILE_SIZE,
    DocumentCache,
    validate_upload,
)

__all__ = [
    "ACCEPTED_FILE_TYPES",
    "CACHE_TTL_SECONDS",
    "MAX_FILE_SIZE",
    "DocumentCache",
    "validate_upload",
]
