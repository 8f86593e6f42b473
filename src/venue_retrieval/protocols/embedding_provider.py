"""Embedding provider protocol.

Defines the interface for any embedding generation service that can
convert the semantic query text to a vector.

Implementations can include:
- Ollama embeddings over HTTP (default)
- sentence-transformers (local)
- Any hosted embedding API
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Protocol for embedding generation services.

    Any type that implements these methods satisfies the protocol, no
    explicit inheritance needed. The dimension is fixed per provider.

    Example:
        ```python
        provider: EmbeddingProvider = OllamaEmbeddingProvider.create()
        provider: EmbeddingProvider = LocalEmbeddingProvider.create()
        ```
    """

    @property
    def dimension(self) -> int:
        """Return the dimension of the embedding vectors."""
        ...

    @property
    def model_name(self) -> str:
        """Return the name/identifier of the model."""
        ...

    async def encode(self, text: str) -> list[float]:
        """Generate the embedding vector for a single text.

        Args:
            text: The text to encode

        Returns:
            The embedding vector as a list of floats

        Raises:
            UpstreamError: If the embedding service fails
        """
        ...

    async def is_available(self) -> bool:
        """Check if the embedding provider is available."""
        ...
