"""Business logic services.

Resolvers wrap collaborators behind their caches, the re-ranking engine
scores candidates, and the pipeline orchestrator composes them.
"""

from .geo_resolver import GeoCandidateResolver
from .pipeline import PipelineOrchestrator
from .query_embedder import QueryEmbedder
from .reranker import RerankingEngine, planar_distance_km, sort_results, time_bucket
from .semantic_query import build_semantic_query
from .upstream import call_upstream
from .vector_resolver import VectorSimilarityResolver, rank_matches

__all__ = [
    "GeoCandidateResolver",
    "PipelineOrchestrator",
    "QueryEmbedder",
    "RerankingEngine",
    "VectorSimilarityResolver",
    "build_semantic_query",
    "call_upstream",
    "planar_distance_km",
    "rank_matches",
    "sort_results",
    "time_bucket",
]
