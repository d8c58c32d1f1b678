"""
Tests for transcript normalization and markdown rendering.
"""

from datetime import datetime, timezone

import pytest

from transcript_processor.models import TranscriptEntry
from transcript_processor.normalizer import (
    DETAILED_HEADING,
    DOCUMENT_TITLE,
    normalize,
    parse_timestamp,
    render_compact,
    render_detailed,
    render_markdown,
)
from transcript_processor.utils.errors import TranscriptFormatError


def entries(*rows):
    return [TranscriptEntry(speaker=s, transcript=t, timestamp=ts) for s, t, ts in rows]


def compact_blocks(text):
    return [block for block in text.split("\n\n") if block]


class TestParseTimestamp:
    """Test timestamp parsing."""

    def test_iso_string_with_offset(self):
        parsed = parse_timestamp("2024-03-01T10:00:00+02:00")
        assert parsed == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def test_naive_string_is_utc(self):
        parsed = parse_timestamp("2024-03-01T10:00:00")
        assert parsed.tzinfo is not None
        assert parsed == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_epoch_number(self):
        parsed = parse_timestamp(0)
        assert parsed == datetime(1970, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["not a date", "", None, True])
    def test_bad_values_fail_fast(self, value):
        with pytest.raises(TranscriptFormatError):
            parse_timestamp(value, index=3)

    def test_error_names_entry(self):
        with pytest.raises(TranscriptFormatError, match="entry 7"):
            parse_timestamp("yesterday-ish", index=7)


class TestNormalize:
    """Test the filter / sort / merge pass."""

    def test_merges_consecutive_speaker_turns(self):
        doc = normalize(entries(
            ("Alice", "Hi", 1),
            ("Alice", "there", 2),
            ("Bob", "Hello", 3),
        ))

        assert [(t.speaker, t.text) for t in doc.turns] == [
            ("Alice", "Hi there"),
            ("Bob", "Hello"),
        ]

    def test_compact_rendering_has_two_blocks(self):
        doc = normalize(entries(
            ("Alice", "Hi", 1),
            ("Alice", "there", 2),
            ("Bob", "Hello", 3),
        ))

        blocks = compact_blocks(render_compact(doc))
        assert blocks == ["**Alice**: Hi there", "**Bob**: Hello"]

    def test_sorts_by_timestamp(self):
        doc = normalize(entries(
            ("Bob", "second", "2024-03-01T10:00:05Z"),
            ("Alice", "first", "2024-03-01T10:00:00Z"),
        ))

        assert [t.speaker for t in doc.turns] == ["Alice", "Bob"]

    def test_mixed_timestamp_formats_compare(self):
        doc = normalize(entries(
            ("Bob", "later", "2024-03-01T10:00:05+00:00"),
            ("Alice", "earlier", "2024-03-01T10:00:00"),
        ))

        assert [t.speaker for t in doc.turns] == ["Alice", "Bob"]

    def test_ties_keep_input_order(self):
        doc = normalize(entries(
            ("Alice", "one", 5),
            ("Bob", "two", 5),
            ("Alice", "three", 5),
        ))

        assert [(t.speaker, t.text) for t in doc.turns] == [
            ("Alice", "one"),
            ("Bob", "two"),
            ("Alice", "three"),
        ]

    def test_merge_happens_after_sorting(self):
        doc = normalize(entries(
            ("Alice", "b", 3),
            ("Bob", "x", 2),
            ("Alice", "a", 1),
            ("Alice", "c", 4),
        ))

        assert [(t.speaker, t.text) for t in doc.turns] == [
            ("Alice", "a"),
            ("Bob", "x"),
            ("Alice", "b c"),
        ]

    def test_drops_incomplete_entries(self):
        raw = [
            TranscriptEntry(speaker="Alice", transcript="kept", timestamp=1),
            TranscriptEntry(speaker="", transcript="no speaker", timestamp=2),
            TranscriptEntry(speaker="Bob", transcript="", timestamp=3),
            TranscriptEntry(transcript="missing speaker", timestamp=4),
            TranscriptEntry(speaker="Carol", timestamp=5),
        ]

        doc = normalize(raw)
        markdown = render_markdown(doc, tz=timezone.utc)

        assert [e.speaker for e in doc.entries] == ["Alice"]
        assert "no speaker" not in markdown
        assert "missing speaker" not in markdown
        assert "**Bob**" not in markdown
        assert "**Carol**" not in markdown

    def test_dropped_entries_skip_timestamp_check(self):
        raw = [
            TranscriptEntry(speaker="Alice", transcript="kept", timestamp=1),
            TranscriptEntry(speaker="", transcript="ignored", timestamp="garbage"),
        ]

        doc = normalize(raw)

        assert len(doc.entries) == 1

    def test_bad_timestamp_on_kept_entry_raises(self):
        with pytest.raises(TranscriptFormatError):
            normalize(entries(("Alice", "hi", "garbage")))

    def test_empty_input(self):
        doc = normalize([])

        assert doc.turns == []
        assert doc.is_empty
        assert render_compact(doc) == ""

    def test_no_adjacent_same_speaker_blocks(self, raw_entries):
        doc = normalize([TranscriptEntry(**e) for e in raw_entries])

        speakers = [t.speaker for t in doc.turns]
        assert all(a != b for a, b in zip(speakers, speakers[1:]))

    def test_idempotent_on_sorted_input(self):
        sorted_entries = entries(
            ("Alice", "a", 1),
            ("Alice", "b", 2),
            ("Bob", "c", 3),
            ("Alice", "d", 3),
        )

        first = normalize(sorted_entries)
        replayed = [
            TranscriptEntry(speaker=e.speaker, transcript=e.transcript, timestamp=e.timestamp.isoformat())
            for e in first.entries
        ]
        second = normalize(replayed)

        assert second.turns == first.turns
        assert second.entries == first.entries

    def test_renormalizing_shuffled_ties_is_stable(self):
        first = normalize(entries(
            ("Bob", "x", 2),
            ("Alice", "a", 1),
            ("Carol", "y", 2),
            ("Alice", "z", 2),
        ))
        replayed = [
            TranscriptEntry(speaker=e.speaker, transcript=e.transcript, timestamp=e.timestamp)
            for e in first.entries
        ]

        second = normalize(replayed)

        assert [(e.speaker, e.transcript) for e in second.entries] == [
            ("Alice", "a"), ("Bob", "x"), ("Carol", "y"), ("Alice", "z"),
        ]
        assert second.turns == first.turns

    def test_does_not_mutate_input(self):
        raw = entries(("Bob", "later", 2), ("Alice", "earlier", 1))
        snapshot = list(raw)

        normalize(raw)

        assert raw == snapshot


class TestRenderMarkdown:
    """Test the combined markdown document."""

    def test_sections_in_order(self):
        doc = normalize(entries(
            ("Alice", "Hi", "2024-03-01T10:00:00Z"),
            ("Alice", "there", "2024-03-01T10:00:02Z"),
            ("Bob", "Hello", "2024-03-01T10:00:05Z"),
        ))

        markdown = render_markdown(doc, tz=timezone.utc, timestamp_format="%H:%M:%S")

        assert markdown.startswith(f"{DOCUMENT_TITLE}\n\n")
        assert markdown.index("**Alice**: Hi there") < markdown.index(DETAILED_HEADING)
        assert markdown.endswith(
            f"{DETAILED_HEADING}\n\n"
            "**Alice** (10:00:00):\nHi\n\n"
            "**Alice** (10:00:02):\nthere\n\n"
            "**Bob** (10:00:05):\nHello\n\n"
        )

    def test_detailed_replays_every_entry(self):
        doc = normalize(entries(("Alice", "a", 1), ("Alice", "b", 2), ("Alice", "c", 3)))

        detailed = render_detailed(doc, tz=timezone.utc)

        assert len(doc.turns) == 1
        assert detailed.count("**Alice** (") == 3

    def test_timestamp_label_uses_display_timezone(self):
        from zoneinfo import ZoneInfo

        doc = normalize(entries(("Alice", "hi", "2024-07-01T12:00:00Z")))

        detailed = render_detailed(doc, tz=ZoneInfo("America/New_York"), timestamp_format="%H:%M %Z")

        assert "(08:00 EDT)" in detailed

    def test_empty_document_still_has_headings(self):
        markdown = render_markdown(normalize([]))

        assert markdown == f"{DOCUMENT_TITLE}\n\n{DETAILED_HEADING}\n\n"
