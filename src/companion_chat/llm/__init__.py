"""Streaming model clients."""

from .streaming_model import GenerationParams, OpenAICompatibleModel, StreamingModel

__all__ = ["GenerationParams", "OpenAICompatibleModel", "StreamingModel"]
