"""Error types raised by the index, the providers and the pipeline."""


class RAGError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequest(RAGError, ValueError):
    """Request parameters rejected before any provider call."""


class DimensionMismatch(RAGError, ValueError):
    """Query vector length differs from a stored vector's length."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: index holds {expected}-d vectors, got {actual}-d"
        )


class ProviderError(RAGError):
    """An external embedding or generation call failed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class EmbeddingFailure(ProviderError):
    """The embedding provider could not embed the text."""


class GenerationFailure(ProviderError):
    """The generation provider could not produce an answer."""
