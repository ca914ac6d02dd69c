"""Prompt construction."""

from .prompt_builder import PROMPT_TEMPLATE, build_prompt

__all__ = ["PROMPT_TEMPLATE", "build_prompt"]
