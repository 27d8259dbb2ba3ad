"""
Error taxonomy for the retrieval engine.

Every error that crosses the engine boundary carries a machine-readable
``kind`` and a human-readable ``message`` so the HTTP layer can report it as
``{"kind": ..., "message": ...}`` without leaking storage or OpenAI exceptions.

NotFound is deliberately absent: missing artworks and collections are
represented as ``None`` or an empty list.
"""
from typing import Dict


class DocentError(Exception):
    """Base error with a stable kind string."""

    kind = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class CatalogParseError(DocentError):
    """Manifest or collection payload could not be parsed."""

    kind = "parse_error"


class UpstreamServiceError(DocentError):
    """Embedding or completion service failed, timed out or answered badly."""

    kind = "upstream_service_error"


class StorageError(DocentError):
    """A catalog backend could not persist a change."""

    kind = "storage_error"


class ValidationError(DocentError):
    """Caller supplied data the catalog cannot accept."""

    kind = "validation_error"
