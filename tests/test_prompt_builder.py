"""Tests for prompt assembly."""

from companion_chat.prompting.prompt_builder import build_prompt


def _build(**overrides):
    args = dict(
        persona_name="Aria",
        persona_instructions="Aria is warm and curious.",
        retrieved_memory="Aria: I love the moon",
        transcript="User: hi\nAria: hello",
        latest_utterance="What do you like?",
    )
    args.update(overrides)
    return build_prompt(**args)


def test_sections_appear_in_order():
    prompt = _build()

    positions = [
        prompt.index("ONLY generate plain sentences"),
        prompt.index("Aria is warm and curious."),
        prompt.index("Below are relevant details about Aria's past"),
        prompt.index("Aria: I love the moon"),
        prompt.index("User: hi\nAria: hello"),
        prompt.index("User: What do you like?"),
    ]
    assert positions == sorted(positions)


def test_ends_with_utterance_and_turn_marker():
    prompt = _build()
    assert prompt.endswith("User: What do you like?\nAria:")


def test_no_prefix_instruction_names_persona():
    assert "DO NOT use Aria: prefix." in _build()


def test_is_deterministic():
    assert _build() == _build()


def test_empty_memory_and_transcript():
    prompt = _build(retrieved_memory="", transcript="")
    assert prompt.endswith("User: What do you like?\nAria:")
    assert "Below are relevant details" in prompt


def test_braces_in_user_text_are_literal():
    prompt = _build(latest_utterance="what is {name}?", persona_instructions="{x}")
    assert "User: what is {name}?" in prompt
    assert "{x}" in prompt
