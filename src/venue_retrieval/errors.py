"""Error taxonomy for the retrieval subsystem.

An empty result is not an error: the pipeline returns an empty
``PipelineResult`` for it.
"""


class RetrievalError(Exception):
    """Base class for all retrieval errors."""


class UpstreamError(RetrievalError):
    """A collaborator (geo, vector, metadata, embedding) rejected a call."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class TransientUpstreamFailure(UpstreamError):
    """A collaborator timed out or answered with a server error.

    Retried at most once by ``call_upstream``; after that the caller degrades.
    """


class CacheBackendUnavailable(RetrievalError):
    """The durable cache store could not be reached.

    Never propagated past the hybrid cache; treated as a miss.
    """


class InvalidContext(RetrievalError, ValueError):
    """A suggestion context failed validation before entering the pipeline."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors
