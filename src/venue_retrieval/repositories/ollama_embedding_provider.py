"""Ollama-based embedding provider.

Embeds the semantic query through Ollama's ``/api/embed`` endpoint. The
venue and event embeddings must come from the same model, or similarities
are meaningless.

Setup: ``ollama pull nomic-embed-text`` and ``ollama serve``. For the Italian
query text a multilingual model (``bge-m3``, ``paraphrase-multilingual``)
ranks better than the English-only ones.
"""

import logging

import httpx

from venue_retrieval.config import settings
from venue_retrieval.errors import TransientUpstreamFailure, UpstreamError

logger = logging.getLogger(__name__)


class OllamaEmbeddingProvider:
    """Ollama-based implementation of EmbeddingProvider protocol.

    This class satisfies the EmbeddingProvider protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        provider = OllamaEmbeddingProvider.create(model_name="nomic-embed-text")
        embedding = await provider.encode("atmosfera romantico, budget €€")
        print(len(embedding))  # 768
        ```
    """

    # Dimensions reported before the first encode
    MODEL_DIMENSIONS = {
        "nomic-embed-text": 768,
        "bge-m3": 1024,
        "paraphrase-multilingual": 768,
        "all-minilm": 384,
    }

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Ollama embedding provider.

        Args:
            model_name: Name of the Ollama model.
                       Defaults to settings.embedding_model.
            base_url: Ollama API base URL.
                     Defaults to settings.ollama_base_url.
            timeout: Request timeout in seconds.
            client: Preconfigured HTTP client (for testing).
        """
        self._model_name = model_name or settings.embedding_model
        self._base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self._timeout = timeout
        self._dimension: int | None = None
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        return self._client

    @classmethod
    def create(
        cls,
        model_name: str | None = None,
        base_url: str | None = None,
    ) -> "OllamaEmbeddingProvider":
        """Factory method to create OllamaEmbeddingProvider with defaults.

        Args:
            model_name: Model name. If None, uses settings.
            base_url: Ollama API URL. If None, uses settings.

        Returns:
            Configured OllamaEmbeddingProvider
        """
        return cls(model_name=model_name, base_url=base_url)

    @property
    def dimension(self) -> int:
        """Get the embedding vector dimension.

        Known models report their dimension up front; unknown ones assume
        768 until the first encode.
        """
        if self._dimension is None:
            self._dimension = self.MODEL_DIMENSIONS.get(self._model_name, 768)
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name

    async def encode(self, text: str) -> list[float]:
        """Generate the embedding vector for a single text.

        Raises:
            TransientUpstreamFailure: On timeouts, connection errors and 5xx
            UpstreamError: On other HTTP errors or an unexpected payload
        """
        url = f"{self._base_url}/api/embed"
        payload = {"model": self._model_name, "input": text}

        try:
            response = await self.client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500:
                raise TransientUpstreamFailure("embedding", f"Ollama returned {status}") from e
            message = f"Ollama returned {status}"
            if status == 404:
                message += f"; model not found, try: ollama pull {self._model_name}"
            raise UpstreamError("embedding", message) from e
        except httpx.TransportError as e:
            raise TransientUpstreamFailure("embedding", f"Ollama unreachable: {e}") from e

        data = response.json()
        # Ollama returns {"embeddings": [[...]]} for single input
        if data.get("embeddings"):
            vector = data["embeddings"][0]
        elif "embedding" in data:
            vector = data["embedding"]
        else:
            raise UpstreamError("embedding", f"Unexpected Ollama response keys: {sorted(data)}")

        self._dimension = len(vector)
        return [float(value) for value in vector]

    async def is_available(self) -> bool:
        """Check if Ollama is running and the model answers."""
        try:
            await self.encode("test")
            return True
        except UpstreamError as e:
            logger.warning("Ollama not available: %s", e)
            return False

    async def close(self) -> None:
        """Close the async HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
