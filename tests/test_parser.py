"""Tests for parser module (tag parsing and splitting)."""

import pytest

from speechcraft.parser import (
    build_output_with_split_tags,
    get_voice_assignments,
    has_voice_tags,
    parse_voice_segments,
    process_voice_tags,
    remove_voice_tags,
    split_by_tag,
    split_paragraphs,
    split_raw,
    strip_split_tags,
)
from speechcraft.models import VoiceSegment


def test_parse_two_voices():
    """Each voice tag switches the voice for the text after it."""
    segments = parse_voice_segments("<voice=1>Hello <voice=2>World", ["Alice", "Bob"])
    assert segments == [
        VoiceSegment(text="Hello", voice_index=0, voice_name="Alice"),
        VoiceSegment(text="World", voice_index=1, voice_name="Bob"),
    ]


def test_build_output_two_voices():
    segments = parse_voice_segments("<voice=1>Hello <voice=2>World", ["Alice", "Bob"])
    assert build_output_with_split_tags(segments) == "Hello <split> World"


def test_parse_no_tags_single_segment():
    """No voice tags: whole text, first voice."""
    segments = parse_voice_segments("  Just some text.  ", ["Alice", "Bob"])
    assert len(segments) == 1
    assert segments[0].text == "Just some text."
    assert segments[0].voice_name == "Alice"


def test_parse_no_voices_uses_default():
    segments = parse_voice_segments("Hello", [])
    assert segments[0].voice_name == "Default"


def test_parse_tag_with_no_voices_uses_default():
    segments = parse_voice_segments("<voice=3>Hello", [])
    assert segments[0].voice_name == "Default"
    assert segments[0].voice_index == 0


def test_parse_clamps_high_index():
    """<voice=5> with two voices resolves to the last voice."""
    segments = parse_voice_segments("<voice=5>Loud", ["Alice", "Bob"])
    assert segments[0].voice_index == 1
    assert segments[0].voice_name == "Bob"


@pytest.mark.parametrize("n", [0, 1, 2, 3, 7, 999999])
def test_parse_index_always_in_range(n):
    voices = ["A", "B", "C"]
    segments = parse_voice_segments(f"<voice={n}>text", voices)
    assert 0 <= segments[0].voice_index <= len(voices) - 1


def test_parse_zero_clamps_to_first():
    segments = parse_voice_segments("<voice=0>text", ["A", "B"])
    assert segments[0].voice_name == "A"


def test_parse_text_before_first_tag_uses_first_voice():
    segments = parse_voice_segments("Intro <voice=2>Second", ["Alice", "Bob"])
    assert segments[0].text == "Intro"
    assert segments[0].voice_name == "Alice"
    assert segments[1].voice_name == "Bob"


def test_parse_tag_whitespace_and_case():
    segments = parse_voice_segments("< VOICE = 2 >Hi", ["Alice", "Bob"])
    assert segments[0].voice_name == "Bob"
    assert segments[0].text == "Hi"


def test_parse_empty_spans_dropped():
    segments = parse_voice_segments("<voice=1>   <voice=2>Only this", ["Alice", "Bob"])
    assert len(segments) == 1
    assert segments[0].text == "Only this"


def test_parse_requires_arguments():
    with pytest.raises(ValueError):
        parse_voice_segments(None, ["A"])


def test_split_tags_only_between_voice_changes():
    """Split tag count equals the number of voice changes between neighbours."""
    text = "<voice=1>a <voice=1>b <voice=2>c <voice=2>d <voice=1>e"
    segments = parse_voice_segments(text, ["A", "B"])
    output = build_output_with_split_tags(segments)
    assert output == "a b <split> c d <split> e"
    changes = sum(
        1 for prev, cur in zip(segments, segments[1:])
        if prev.voice_index != cur.voice_index
    )
    assert output.count("<split>") == changes


def test_build_output_empty():
    assert build_output_with_split_tags([]) == ""


def test_process_voice_tags_passthrough_without_voices():
    assert process_voice_tags("<voice=1>Hi", []) == "<voice=1>Hi"
    assert process_voice_tags("", ["A"]) == ""


def test_voice_assignments_follow_chunks():
    """Neighbouring same-voice segments share one chunk index."""
    text = "<voice=1>a <voice=1>b <voice=2>c"
    assert get_voice_assignments(text, ["A", "B"]) == {0: "A", 1: "B"}


@pytest.mark.parametrize("text,k", [
    ("A", 0),
    ("A <split> B", 1),
    ("A <split> B <split/> C", 2),
    ("<split><split>", 2),
    ("", 0),
])
def test_split_raw_gives_k_plus_one(text, k):
    assert len(split_raw(text)) == k + 1


def test_split_by_tag_trims_and_drops_empty():
    assert split_by_tag("A <split> B <SPLIT/> C") == ["A", "B", "C"]
    assert split_by_tag(" A <split>   <split> B ") == ["A", "B"]


def test_split_by_tag_never_empty():
    assert split_by_tag("") == [""]
    assert split_by_tag("<split> <split/>") == [""]
    assert split_by_tag(None) == [""]


def test_split_tag_variants():
    assert split_by_tag("a< split >b<split />c") == ["a", "b", "c"]


def test_has_and_remove_voice_tags():
    assert has_voice_tags("x <voice=3> y")
    assert not has_voice_tags("x <split> y")
    assert not has_voice_tags(None)
    assert remove_voice_tags("<voice=1>Hi <voice=2>there") == "Hi there"


def test_strip_split_tags():
    assert strip_split_tags("A<split>B<split/>C") == "A B C"


def test_voice_assignments_with_embedded_split_tags():
    """A voice tag covers every chunk after it until the next voice tag."""
    text = "<voice=1>A <split> B <voice=2>C"
    assert get_voice_assignments(text, ["Alice", "Bob", "Carol"]) == {0: "Alice", 1: "Alice", 2: "Bob"}


def test_voice_assignments_match_processed_chunks():
    voices = ["Alice", "Bob"]
    text = "<voice=1>A <split> <voice=1>B <voice=2>C <split> D"
    assignments = get_voice_assignments(text, voices)
    chunks = split_by_tag(process_voice_tags(text, voices))
    assert chunks == ["A", "B", "C", "D"]
    assert assignments == {0: "Alice", 1: "Alice", 2: "Bob", 3: "Bob"}


def test_split_paragraphs():
    text = "One.\n\nTwo.\r\n\r\nThree.\nStill three."
    assert split_paragraphs(text) == "One. <split> Two. <split> Three.\nStill three."


def test_split_paragraphs_keeps_existing_split_tags():
    text = "One <split> Two\n\nThree"
    assert split_paragraphs(text) == text
    assert split_paragraphs("") == ""
