"""Handler layer for HTTP endpoints.

This layer contains the HTTP request/response handlers.
Handlers depend on services (business logic), not directly on repositories.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)
"""

from .pipeline_handler import PipelineHandler, to_ranked_item, to_run_response

__all__ = [
    "PipelineHandler",
    "to_ranked_item",
    "to_run_response",
]
