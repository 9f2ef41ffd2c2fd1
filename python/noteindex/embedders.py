"""
Embedders - Embedding backends resolved once, outside the indexing core.

The orchestrator only sees an async callable text -> vector. Which
backend provides it is decided here from the persisted settings:

- RemoteEmbedder: OpenAI-compatible /embeddings endpoint over httpx
- LocalEmbedder: sentence-transformers model, lazily loaded
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from .errors import ConfigurationError, EmbeddingError, EmptyContentError


logger = logging.getLogger(__name__)

EmbeddingFunction = Callable[[str], Awaitable[List[float]]]

OPENAI_PROVIDER = "openai"
ANTHROPIC_PROVIDER = "anthropic"
GCP_PROVIDER = "gcp"
LOCAL_PROVIDER = "local"

OPENAI_EMBEDDING_3_SMALL = "text-embedding-3-small"
OPENAI_EMBEDDING_3_LARGE = "text-embedding-3-large"

OPENAI_BASE_URL = "https://api.openai.com/v1"
GCP_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"

# text-embedding-3-small is requested at reduced size to keep the settings blob small
_DEFAULT_DIMENSIONS = {OPENAI_EMBEDDING_3_SMALL: 256}


class RemoteEmbedder:
    """
    Async client for an OpenAI-compatible embeddings API.

    One request per note; concurrency is bounded by the caller, not here.
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: str = OPENAI_BASE_URL,
        dimensions: Optional[int] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError(f"No API key configured for embedding model {model}")

        self.model = model
        self.dimensions = dimensions if dimensions is not None else _DEFAULT_DIMENSIONS.get(model)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __call__(self, text: str) -> List[float]:
        return await self.embed(text)

    async def embed(self, text: str) -> List[float]:
        """Embed one text. Raises EmbeddingError on any API failure."""
        if not text or not text.strip():
            raise EmptyContentError()

        payload: dict[str, Any] = {"model": self.model, "input": [text]}
        if self.dimensions:
            payload["dimensions"] = self.dimensions

        try:
            response = await self._client.post("/embeddings", json=payload)
            response.raise_for_status()
            data = response.json()
            return [float(v) for v in data["data"][0]["embedding"]]
        except httpx.HTTPStatusError as e:
            raise EmbeddingError(
                f"{self.model}: HTTP {e.response.status_code} from embeddings API"
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingError(f"{self.model}: {type(e).__name__}: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError(f"{self.model}: malformed embeddings response") from e

    async def aclose(self) -> None:
        await self._client.aclose()


class LocalEmbedder:
    """
    Local sentence-transformers backend.

    The model is loaded on first use; encoding runs in a worker thread so
    the event loop keeps serving other notes.
    """

    def __init__(self, model: str = "all-MiniLM-L6-v2", device: Optional[str] = None):
        self.model = model
        self.device = device
        self._model = None

    def _get_model(self):
        """Lazy-load the embedding model."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                logger.error("sentence-transformers not installed. Run: pip install 'noteindex[local]'")
                raise

            self._model = SentenceTransformer(self.model, device=self.device)
            logger.info(
                f"Loaded local model {self.model} "
                f"(dim={self._model.get_sentence_embedding_dimension()})"
            )
        return self._model

    def _encode(self, text: str) -> List[float]:
        model = self._get_model()
        embedding = model.encode([text], convert_to_numpy=True, normalize_embeddings=True)
        return embedding[0].tolist()

    async def __call__(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmptyContentError()
        return await asyncio.to_thread(self._encode, text)

    async def aclose(self) -> None:
        self._model = None


Embedder = RemoteEmbedder | LocalEmbedder


def resolve_embedder(
    settings: Any,
    api_key: Optional[str],
    base_url: Optional[str] = None,
    timeout: float = RemoteEmbedder.DEFAULT_TIMEOUT,
) -> Embedder:
    """
    Build the embedding backend for the configured model.

    Args:
        settings: PluginSettings with the model as "provider:model"
        api_key: Key for remote providers (credentials live outside this package)
        base_url: Override for OpenAI-compatible endpoints

    Raises:
        ConfigurationError: Embeddings disabled, unsupported provider or no key.
    """
    if not settings.embeddings_enabled:
        raise ConfigurationError("Embeddings are disabled in settings")

    provider = settings.provider_id
    model = settings.model_name

    if provider == ANTHROPIC_PROVIDER:
        raise ConfigurationError("Anthropic provider has no embeddings endpoint")

    if provider == LOCAL_PROVIDER:
        return LocalEmbedder(model)

    if base_url is None:
        base_url = GCP_BASE_URL if provider == GCP_PROVIDER else OPENAI_BASE_URL

    logger.info(f"Using remote embeddings: {provider}:{model}")
    return RemoteEmbedder(model, api_key or "", base_url=base_url, timeout=timeout)
