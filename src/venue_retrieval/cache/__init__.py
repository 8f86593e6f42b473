"""Cache tiers.

``TieredCache`` is the in-process LRU/TTL store, ``HybridCache`` puts it in
front of a durable store, and ``CacheSuite`` owns the four typed caches the
pipeline uses.
"""

from .codecs import (
    CandidateIdsCodec,
    CandidateSet,
    Embedding,
    EmbeddingCodec,
    PayloadCodec,
    PipelineResultCodec,
    SimilarityCodec,
    SimilarityList,
)
from .hybrid import HybridCache
from .suite import CacheSuite
from .tiered import TieredCache, estimate_size
from .write_behind import PendingWrite, WriteBehindQueue

__all__ = [
    "CacheSuite",
    "CandidateIdsCodec",
    "CandidateSet",
    "Embedding",
    "EmbeddingCodec",
    "HybridCache",
    "PayloadCodec",
    "PendingWrite",
    "PipelineResultCodec",
    "SimilarityCodec",
    "SimilarityList",
    "TieredCache",
    "WriteBehindQueue",
    "estimate_size",
]
