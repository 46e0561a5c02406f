"""
Pinecone Vector Store

Indexes atomic documents and retrieves the closest ones as classification
context. The Pinecone SDK is synchronous, so every call runs in a worker
thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pinecone import Pinecone, ServerlessSpec
from pinecone.exceptions import NotFoundException, ServiceException

from src.common.resilience import RetryConfig, best_effort, retry_with_backoff
from src.common.telemetry import trace_span
from src.nlquery.config import NLQueryConfig
from src.nlquery.exceptions import MissingConfigError, VectorStoreError
from src.nlquery.models import RAGContext
from src.nlquery.rag.documents import DocumentType, VectorDocument
from src.nlquery.rag.embedders import Embedder, create_embedder

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 100
READY_TIMEOUT_SECONDS = 60.0
READY_POLL_SECONDS = 2.0

# Only whole, self-contained documents are used as context
RETRIEVAL_FILTER: dict[str, Any] = {
    "atomic": {"$eq": True},
    "complete": {"$eq": True},
}

UPSERT_RETRY = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    retryable_exceptions=(ConnectionError, TimeoutError, ServiceException),
)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from an SDK model or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _is_not_found(error: Exception) -> bool:
    if isinstance(error, NotFoundException):
        return True
    return _field(error, "status") == 404 or "404" in str(error)


class PineconeVectorStore:
    """
    Vector store backed by a Pinecone serverless index.

    Usage:
        store = PineconeVectorStore(embedder, api_key=key)
        await store.upsert_documents(build_all_documents(DEFAULT_FUNCTIONS))
        context = await store.retrieve_context("Large projects in Texas")
    """

    def __init__(
        self,
        embedder: Embedder,
        api_key: str | None = None,
        index_name: str = "query-functions",
        namespace: str = "default",
        dimension: int = 3072,
        cloud: str = "aws",
        region: str = "us-east-1",
        client: Any | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the store.

        Args:
            embedder: Embedding provider (dimension must match the index)
            api_key: Pinecone API key
            index_name: Index to use or create
            namespace: Namespace for all reads and writes
            dimension: Vector dimension used when creating the index
            cloud: Serverless cloud for index creation
            region: Serverless region for index creation
            client: Pre-built Pinecone client
            sleep: Awaitable sleep used while polling for readiness
            clock: Monotonic clock used for the readiness timeout
        """
        self._embedder = embedder
        self._client = client or Pinecone(api_key=api_key)
        self._index_name = index_name
        self._namespace = namespace
        self._dimension = dimension
        self._cloud = cloud
        self._region = region
        self._sleep = sleep
        self._clock = clock
        self._index: Any = None

    @property
    def index_name(self) -> str:
        return self._index_name

    @property
    def namespace(self) -> str:
        return self._namespace

    async def ensure_index(self) -> None:
        """
        Create the index if missing and wait until it is ready.

        Raises:
            VectorStoreError: Index did not become ready in time
        """
        if self._index is not None:
            return

        existing = await asyncio.to_thread(lambda: list(self._client.list_indexes().names()))
        if self._index_name not in existing:
            logger.info(f"Creating Pinecone index {self._index_name} ({self._dimension} dims)")
            await asyncio.to_thread(
                self._client.create_index,
                name=self._index_name,
                dimension=self._dimension,
                metric="cosine",
                spec=ServerlessSpec(cloud=self._cloud, region=self._region),
            )
            await self._wait_until_ready()

        self._index = self._client.Index(self._index_name)

    async def _wait_until_ready(self) -> None:
        deadline = self._clock() + READY_TIMEOUT_SECONDS
        while self._clock() < deadline:
            try:
                description = await asyncio.to_thread(self._client.describe_index, self._index_name)
                status = _field(description, "status") or {}
                if _field(status, "ready"):
                    logger.info(f"Pinecone index {self._index_name} is ready")
                    return
            except NotFoundException:
                # Not visible yet right after creation
                pass
            await self._sleep(READY_POLL_SECONDS)

        raise VectorStoreError(
            "ensure_index",
            f"index {self._index_name} not ready within {READY_TIMEOUT_SECONDS:g}s",
        )

    async def upsert_documents(self, documents: Sequence[VectorDocument]) -> int:
        """
        Embed and upsert documents in batches. Idempotent by document id.

        Returns:
            Number of documents written
        """
        await self.ensure_index()
        total_batches = (len(documents) + UPSERT_BATCH_SIZE - 1) // UPSERT_BATCH_SIZE

        with trace_span("rag.upsert", {"rag.documents": len(documents)}):
            for start in range(0, len(documents), UPSERT_BATCH_SIZE):
                batch = documents[start : start + UPSERT_BATCH_SIZE]
                embeddings = await self._embedder.embed_batch([doc.to_text() for doc in batch])
                vectors = [
                    {"id": doc.id, "values": values, "metadata": doc.metadata()}
                    for doc, values in zip(batch, embeddings)
                ]
                await retry_with_backoff(
                    asyncio.to_thread,
                    self._index.upsert,
                    config=UPSERT_RETRY,
                    sleep=self._sleep,
                    vectors=vectors,
                    namespace=self._namespace,
                )
                logger.info(
                    f"Upserted batch {start // UPSERT_BATCH_SIZE + 1}/{total_batches} "
                    f"into {self._index_name}/{self._namespace}"
                )

        return len(documents)

    @best_effort(RAGContext, "context retrieval")
    async def retrieve_context(self, question: str, top_k: int = 5) -> RAGContext:
        """
        Retrieve the closest atomic documents for a question.

        Never raises: any failure yields an empty context with confidence 0.
        """
        with trace_span("rag.retrieve", {"rag.top_k": top_k}) as span:
            await self.ensure_index()
            vector = await self._embedder.embed(question)
            response = await asyncio.to_thread(
                self._index.query,
                vector=vector,
                top_k=top_k,
                include_metadata=True,
                filter=RETRIEVAL_FILTER,
                namespace=self._namespace,
            )

            grouped: dict[str, list[dict[str, Any]]] = {t.value: [] for t in DocumentType}
            matches = list(_field(response, "matches") or [])
            total_score = 0.0
            for match in matches:
                total_score += _field(match, "score") or 0.0
                metadata = _field(match, "metadata")
                if not metadata:
                    continue
                doc_type = metadata.get("type")
                if doc_type in grouped:
                    grouped[doc_type].append(json.loads(metadata.get("content") or "{}"))

            confidence = total_score / len(matches) if matches else 0.0
            span.set_attribute("rag.matches", len(matches))
            logger.info(
                f"Retrieved {len(grouped['function'])} functions, {len(grouped['schema'])} schemas, "
                f"{len(grouped['example'])} examples, {len(grouped['parameter'])} parameters "
                f"(confidence {confidence:.1%})"
            )

            return RAGContext(
                functions=tuple(grouped["function"]),
                schemas=tuple(grouped["schema"]),
                examples=tuple(grouped["example"]),
                parameters=tuple(grouped["parameter"]),
                confidence=confidence,
            )

    async def clear_index(self) -> None:
        """Delete every vector in the namespace. An empty namespace is not an error."""
        await self.ensure_index()
        try:
            await asyncio.to_thread(
                self._index.delete, delete_all=True, namespace=self._namespace
            )
        except Exception as e:
            if _is_not_found(e):
                logger.info(f"Namespace {self._namespace} already empty")
                return
            raise VectorStoreError("clear_index", str(e)) from e
        logger.info(f"Cleared {self._index_name}/{self._namespace}")


def create_vector_store(config: NLQueryConfig, embedder: Embedder | None = None) -> PineconeVectorStore:
    """
    Create the vector store described by configuration.

    Raises:
        MissingConfigError: No Pinecone key configured
    """
    if not config.pinecone_api_key:
        raise MissingConfigError("pinecone_api_key", hint="Set PINECONE_API_KEY")
    return PineconeVectorStore(
        embedder=embedder or create_embedder(config),
        api_key=config.pinecone_api_key,
        index_name=config.pinecone_index_name,
        namespace=config.pinecone_namespace,
        dimension=config.embedding_dimension,
        cloud=config.pinecone_cloud,
        region=config.pinecone_region,
    )
