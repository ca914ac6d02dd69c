"""Prompt construction for persona replies.

Builds the single text prompt sent to the streaming model from the persona
definition, recalled long-term memory, the live transcript and the latest user
utterance. The latest utterance always comes last so it is the most salient
input. Pure and deterministic.
"""

from __future__ import annotations

PROMPT_TEMPLATE = """\
ONLY generate plain sentences without prefix of who is speaking. DO NOT use {name}: prefix.

{instructions}

Below are relevant details about {name}'s past and the conversation you are in.
{retrieved_memory}

{transcript}

User: {utterance}
{name}:"""


def build_prompt(
    persona_name: str,
    persona_instructions: str,
    retrieved_memory: str,
    transcript: str,
    latest_utterance: str,
) -> str:
    """Assemble the model input.

    Args:
        persona_name: Display name of the persona
        persona_instructions: Persona instructions, embedded verbatim
        retrieved_memory: Recalled long-term snippets (may be empty)
        transcript: Short-term history window transcript
        latest_utterance: The user's new message

    Returns:
        Prompt text ending with the utterance and the persona's turn marker
    """
    return PROMPT_TEMPLATE.format(
        name=persona_name,
        instructions=persona_instructions,
        retrieved_memory=retrieved_memory,
        transcript=transcript,
        utterance=latest_utterance,
    )
