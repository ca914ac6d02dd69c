"""Companion chat: persona conversations with layered memory and streamed replies."""

__version__ = "0.1.0"
