"""Tests for rendering and chunking chat messages into prompt chunks."""

import pytest

from slaude.config.loader import PromptSettings
from slaude.core.events import ChatMessage, Chunk
from slaude.core.prompt import ChunkOverflowError, PromptChunker

LOREM = "Lorem ipsum dolor sit amet. " * 100


def _msg(role, content, name=None):
    return ChatMessage(role=role, content=content, name=name)


def test_short_conversation_fits_one_chunk():
    chunker = PromptChunker(PromptSettings())
    chunks = chunker.chunk(
        [_msg("system", "Be nice"), _msg("user", "Hi"), _msg("assistant", "Hello")]
    )
    assert chunks == [Chunk("Be nice\n\nH: Hi\n\nA: Hello\n\n")]


def test_first_label_kept_when_not_omitted():
    chunker = PromptChunker(PromptSettings(omit_first_role_label=False))
    assert chunker.chunk([_msg("user", "Hi")]) == [Chunk("H: Hi\n\n")]


def test_first_assistant_message_keeps_label():
    chunker = PromptChunker(PromptSettings())
    assert chunker.render(_msg("assistant", "Hey"), is_first=True) == "A: Hey\n\n"


def test_system_name_selects_example_label():
    chunker = PromptChunker(PromptSettings())
    text = chunker.chunk(
        [
            _msg("user", "Start"),
            _msg("system", "Sure thing", name="example_assistant"),
            _msg("system", "Question", name="example_user"),
        ]
    )[0].text
    assert text == "Start\n\nA: Sure thing\n\nH: Question\n\n"


def test_system_name_without_entry_falls_back_to_role():
    chunker = PromptChunker(PromptSettings())
    assert chunker.label_for(_msg("system", "x", name="narrator"), is_first=False) == "H"


def test_empty_label_renders_content_only():
    settings = PromptSettings(rename_roles={"system": "", "user": "H", "assistant": "A"})
    chunker = PromptChunker(settings)
    assert chunker.render(_msg("system", "rules"), is_first=False) == "rules\n\n"


def test_empty_message_list_yields_one_empty_chunk():
    assert PromptChunker(PromptSettings()).chunk([]) == [Chunk("")]


def test_rendering_exactly_at_max_is_one_chunk():
    settings = PromptSettings(max_chunk_length=50, length_overhead=5, min_split_length=10)
    chunks = PromptChunker(settings).chunk([_msg("user", "x" * 48)])
    assert len(chunks) == 1
    assert len(chunks[0]) == 50


def test_combined_length_equal_to_max_flushes():
    settings = PromptSettings(max_chunk_length=50, length_overhead=5, min_split_length=10)
    chunker = PromptChunker(settings)
    chunks = chunker.chunk([_msg("user", "a" * 20), _msg("user", "b" * 23)])
    assert chunks == [Chunk("a" * 20 + "\n\n"), Chunk("H: " + "b" * 23 + "\n\n")]
    chunks = chunker.chunk([_msg("user", "a" * 20), _msg("user", "b" * 22)])
    assert len(chunks) == 1


def test_long_message_is_split_losslessly():
    settings = PromptSettings(max_chunk_length=1000, length_overhead=20, min_split_length=100)
    chunks = PromptChunker(settings).chunk([_msg("user", LOREM)])
    assert len(chunks) >= 2
    assert all(len(c) <= 1000 for c in chunks)
    joined = "".join(c.text for c in chunks).replace("\n\n", "").replace("H: ", "")
    assert joined == LOREM


def test_split_remainder_keeps_role_and_name():
    settings = PromptSettings(max_chunk_length=1000, length_overhead=20, min_split_length=100)
    chunks = PromptChunker(settings).chunk(
        [_msg("user", "Hi"), _msg("system", LOREM, name="example_assistant")]
    )
    assert chunks[0] == Chunk("Hi\n\n")
    assert len(chunks) >= 3
    assert all(c.text.startswith("A: ") for c in chunks[1:])


def test_messages_keep_order_across_chunks():
    settings = PromptSettings(max_chunk_length=100, length_overhead=10, min_split_length=20)
    messages = [_msg("user" if i % 2 else "assistant", f"message number {i}") for i in range(12)]
    chunks = PromptChunker(settings).chunk(messages)
    joined = "".join(c.text for c in chunks)
    positions = [joined.index(f"message number {i}\n") for i in range(12)]
    assert positions == sorted(positions)
    assert all(len(c) <= 100 for c in chunks)


def test_overflow_raises():
    settings = PromptSettings.model_construct(
        rename_roles={"user": "Human"},
        omit_first_role_label=False,
        max_chunk_length=100,
        length_overhead=0,
        min_split_length=10,
    )
    with pytest.raises(ChunkOverflowError):
        PromptChunker(settings).chunk([_msg("user", "word " * 60)])


def test_unlabelled_split_stays_within_max():
    settings = PromptSettings(
        rename_roles={}, length_overhead=2, max_chunk_length=100, min_split_length=10
    )
    chunks = PromptChunker(settings).chunk([_msg("user", "x" * 99)])
    assert [len(c) for c in chunks] == [100, 3]
