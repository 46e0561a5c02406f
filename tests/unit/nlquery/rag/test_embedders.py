"""Tests for the OpenAI embedder."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.nlquery.config import NLQueryConfig
from src.nlquery.exceptions import MissingConfigError
from src.nlquery.rag.embedders import OpenAIEmbedder, create_embedder


def embedding_response(vectors: list[list[float]], tokens: int = 12) -> SimpleNamespace:
    return SimpleNamespace(
        data=[SimpleNamespace(embedding=v) for v in vectors],
        usage=SimpleNamespace(total_tokens=tokens),
    )


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.embeddings.create = AsyncMock(
        return_value=embedding_response([[0.1, 0.2], [0.3, 0.4]])
    )
    return client


class TestOpenAIEmbedder:

    @pytest.mark.asyncio
    async def test_embed_batch_requests_dimension(self, client) -> None:
        embedder = OpenAIEmbedder(model="text-embedding-3-large", dimension=3072, client=client)

        vectors = await embedder.embed_batch(["first", "second"])

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        client.embeddings.create.assert_awaited_once_with(
            model="text-embedding-3-large", input=["first", "second"], dimensions=3072
        )
        assert embedder.stats == {"total_requests": 1, "total_tokens": 12, "rate_limit_hits": 0}

    @pytest.mark.asyncio
    async def test_embed_single(self, client) -> None:
        client.embeddings.create.return_value = embedding_response([[1.0, 0.0]])
        embedder = OpenAIEmbedder(client=client)

        assert await embedder.embed("question") == [1.0, 0.0]
        assert client.embeddings.create.call_args.kwargs["input"] == ["question"]

    @pytest.mark.asyncio
    async def test_empty_batch_skips_request(self, client) -> None:
        embedder = OpenAIEmbedder(client=client)

        assert await embedder.embed_batch([]) == []
        client.embeddings.create.assert_not_awaited()

    def test_dimension(self, client) -> None:
        assert OpenAIEmbedder(dimension=256, client=client).dimension == 256


class TestCreateEmbedder:

    def test_requires_openai_key(self, monkeypatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("NLQUERY_OPENAI_API_KEY", raising=False)

        with pytest.raises(MissingConfigError):
            create_embedder(NLQueryConfig(_env_file=None))

    def test_uses_configured_model(self) -> None:
        config = NLQueryConfig(
            _env_file=None,
            openai_api_key="sk-test",
            embedding_model="text-embedding-3-small",
            embedding_dimension=1536,
        )

        embedder = create_embedder(config)

        assert isinstance(embedder, OpenAIEmbedder)
        assert embedder.dimension == 1536
