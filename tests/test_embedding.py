"""Tests for EmbeddingService providers."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import numpy as np
import pytest

from companion_chat.config import EmbeddingConfig
from companion_chat.memory.embedding import EmbeddingService


@pytest.mark.asyncio
async def test_api_provider_normalizes_vectors():
    service = EmbeddingService(
        EmbeddingConfig(provider="api", model="embed-model", base_url="http://x/v1")
    )
    client = service._ensure_client()
    client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(
            data=[
                SimpleNamespace(embedding=[3.0, 4.0]),
                SimpleNamespace(embedding=[0.0, 0.0]),
            ]
        )
    )

    vectors = await service.embed(["a", "b"])

    assert np.allclose(vectors[0], [0.6, 0.8])
    assert vectors[1] == [0.0, 0.0]
    client.embeddings.create.assert_awaited_once_with(model="embed-model", input=["a", "b"])


@pytest.mark.asyncio
async def test_empty_input_skips_backend():
    service = EmbeddingService(EmbeddingConfig(provider="api"))
    assert await service.embed([]) == []
    assert service._client is None


@pytest.mark.asyncio
async def test_local_model_loaded_lazily():
    service = EmbeddingService(EmbeddingConfig(provider="local"))
    assert service._model is None
    assert service.dimension == 384
