"""Tests for the boundary-safe splitter."""

import pytest

from slaude.core.splitter import BOUNDARIES, BoundarySafeSplitter, inside_code_block, split_text


def test_boundary_order():
    names = [b.name for b in BOUNDARIES]
    assert names == [
        "heading1",
        "heading2",
        "heading3",
        "heading4",
        "heading5",
        "heading6",
        "paragraph",
        "newline",
        "sentence",
        "whitespace",
    ]


def test_paragraph_break_preferred_over_newline():
    text = "A" * 600 + "\n\n" + "B" * 300 + "\n" + "C" * 600
    left, right = split_text(text, 1000, 500)
    assert left == "A" * 600 + "\n\n"
    assert right.startswith("B")


def test_heading_preferred_over_later_paragraph():
    text = "x" * 600 + "\n# Title\n" + "y" * 200 + "\n\n" + "z" * 1000
    left, right = split_text(text, 1000, 500)
    assert left == "x" * 600 + "\n"
    assert right.startswith("# Title")


def test_shallow_heading_preferred_over_deeper_one():
    text = "x" * 600 + "\n# Top\n" + "y" * 200 + "\n## Sub\n" + "z" * 2000
    left, right = split_text(text, 1000, 500)
    assert right.startswith("# Top")


def test_never_splits_inside_fenced_code():
    text = "p" * 550 + "\n\n" + "```python\n" + "a = 1\n\n" * 40 + "```\n" + "z" * 1000
    left, right = split_text(text, 800, 500)
    assert left == "p" * 550 + "\n\n"
    assert right.startswith("```python")
    assert not inside_code_block(text, len(left))


def test_inside_code_block():
    text = "intro\n```\ncode\n```\noutro"
    assert inside_code_block(text, text.index("code"))
    assert not inside_code_block(text, text.index("outro"))
    assert not inside_code_block(text, 0)


def test_sentence_end_used_when_newline_exceeds_max():
    text = "a" * 599 + "." + "\n" + "b" * 600
    left, right = split_text(text, 600, 500)
    assert left == "a" * 599 + "."
    assert right.startswith("\n")


def test_whitespace_split_avoids_emphasis():
    text = "w" * 520 + " *bold words here*" + "z" * 1000
    left, right = split_text(text, 1000, 500)
    assert left == "w" * 520 + " "
    assert right.startswith("*bold")


def test_first_pass_avoids_brackets():
    text = "a" * 520 + " (" + "words " * 50 + ")" + "b" * 800
    left, right = split_text(text, 1000, 500)
    assert left == "a" * 520 + " "
    assert right.startswith("(")


def test_second_pass_cuts_inside_brackets():
    text = "(" + "word " * 300 + ")"
    left, right = split_text(text, 1000, 500)
    assert left == text[:996]
    assert left.endswith(" ")
    assert left + right == text


def test_hard_cut_when_no_boundary():
    text = "x" * 2000
    left, right = split_text(text, 1000, 500)
    assert left == "x" * 1000
    assert right == "x" * 1000


def test_hard_cut_when_boundaries_are_below_minimum():
    text = "a" * 100 + " " + "b" * 1500
    left, right = split_text(text, 1000, 500)
    assert left == text[:1000]
    assert left + right == text


def test_search_reports_exhausted_category():
    splitter = BoundarySafeSplitter("no breaks at all but spaces")
    heading = BOUNDARIES[0]
    assert splitter.search(heading, 0, 20, allow_delimiters=False) is None


SAMPLES = [
    "# Intro\n\nSome text. More text here!\n\n## Details\n" + "line of detail\n" * 120,
    "```\n" + "print('x')\n" * 80 + "```\n\nAfter the code. " * 20,
    "**" + "very bold " * 80 + "** then plain text " * 40,
    "Mixed (parens [and brackets]) {with braces}. " * 60,
    "word " * 500,
]


@pytest.mark.parametrize("text", SAMPLES)
def test_split_is_lossless_and_bounded(text):
    left, right = split_text(text, 1000, 200)
    assert left + right == text
    assert len(left) <= 1000
    assert left
