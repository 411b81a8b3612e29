"""Tests for src/lyric_checker/extractor.py - issue body payload extraction."""

from pathlib import Path

import pytest

from src.lyric_checker.extractor import (
    ExtractionError,
    MALFORMED_TEMPLATE,
    MISSING_FIELD,
    MISSING_SECTION,
    extract_payload,
    normalize_field_name,
    split_lines,
)
from src.lyric_checker.models import ExtractedPayload


FIXTURES_DIR = Path(__file__).parent / "fixtures" / "submissions"


def _body(*lines: str) -> str:
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Successful extraction
# ---------------------------------------------------------------------------

class TestLabelledTemplate:
    def test_plain_labels(self):
        body = _body(
            "Title: Paper Boats",
            "Artist: Lena Moor",
            "TrackID: lm-01",
            "Contributors: carol",
            "",
            "### Lyrics",
            "```",
            "00:01.00 Fold the morning",
            "```",
        )
        payload = extract_payload(body)
        assert payload.get("title") == "Paper Boats"
        assert payload.get("artist") == "Lena Moor"
        assert payload.get("trackid") == "lm-01"
        assert payload.get("contributors") == "carol"
        assert payload.lyric_block == "00:01.00 Fold the morning\n"

    def test_bold_and_list_labels(self):
        body = _body(
            "**Title:** Paper Boats",
            "- Artist: Lena Moor",
            "**Track ID**: lm-01",
            "```lyrics",
            "00:01.00 a",
            "```",
        )
        payload = extract_payload(body)
        assert payload.get("title") == "Paper Boats"
        assert payload.get("artist") == "Lena Moor"
        assert payload.get("trackid") == "lm-01"

    def test_value_with_colons_is_kept_whole(self):
        body = _body(
            "TrackID: spotify:track:abc123",
            "```lrc",
            "00:01.00 a",
            "```",
        )
        assert extract_payload(body).get("trackid") == "spotify:track:abc123"

    def test_first_label_wins(self):
        body = _body(
            "Title: First",
            "Title: Second",
            "```lrc",
            "00:01.00 a",
            "```",
        )
        assert extract_payload(body).get("title") == "First"

    def test_labelled_fixture(self):
        payload = extract_payload((FIXTURES_DIR / "labelled.md").read_text(encoding="utf-8"))
        assert payload.get("title") == "Paper Boats"
        assert payload.get("contributors") == "@carol"
        assert payload.lyric_block.count("\n") == 3


class TestIssueFormTemplate:
    def test_issue_form_fixture(self):
        payload = extract_payload((FIXTURES_DIR / "issue_form.md").read_text(encoding="utf-8"))
        assert payload.get("title") == "Starlight Avenue"
        assert payload.get("artist") == "The Night Owls"
        assert payload.get("trackid") == "spotify:track:4uLU6hMCjMI75M1A2tKUQC"
        assert payload.get("contributors") == "alice, bob"
        assert payload.get("baserevision") == "3"
        assert payload.get("remarks") == "Fixed the timing of the second verse."
        assert payload.lyric_block.startswith("[00:12.40] Walking down the avenue\n")

    def test_no_response_placeholder_is_empty(self):
        body = _body(
            "### Title",
            "",
            "Song",
            "",
            "### Contributors",
            "",
            "_No response_",
            "",
            "### Lyrics",
            "",
            "```",
            "00:01.00 a",
            "```",
        )
        payload = extract_payload(body)
        assert payload.get("title") == "Song"
        assert payload.fields["contributors"] == ""
        assert payload.get("contributors") is None

    def test_section_value_that_looks_like_a_label(self):
        body = _body(
            "### Title",
            "",
            "Live: Remastered",
            "",
            "```lrc",
            "00:01.00 a",
            "```",
        )
        payload = extract_payload(body)
        assert payload.get("title") == "Live: Remastered"
        assert "live" not in payload.fields

    def test_lyrics_heading_is_not_a_field(self):
        body = _body("### Lyrics", "", "```", "00:01.00 a", "```")
        payload = extract_payload(body)
        assert "lyrics" not in payload.fields


class TestLyricBlock:
    def test_crlf_preserved_verbatim(self):
        body = "Title: X\r\n```lrc\r\n00:01.00 a\r\n00:02.00 b\r\n```\r\n"
        payload = extract_payload(body)
        assert payload.lyric_block == "00:01.00 a\r\n00:02.00 b\r\n"
        assert payload.get("title") == "X"

    def test_tilde_fence(self):
        body = _body("~~~lrc", "00:01.00 a", "~~~")
        assert extract_payload(body).lyric_block == "00:01.00 a\n"

    def test_unrelated_code_block_is_ignored(self):
        body = _body(
            "```python",
            "print('hi')",
            "```",
            "### Lyrics",
            "```",
            "00:01.00 a",
            "```",
        )
        assert extract_payload(body).lyric_block == "00:01.00 a\n"

    def test_fields_are_read_only(self):
        payload = extract_payload(_body("Title: X", "```lrc", "00:01.00 a", "```"))
        with pytest.raises(TypeError):
            payload.fields["title"] = "Y"
        assert payload.get("title") == "X"

    def test_payload_copies_caller_fields(self):
        fields = {"title": "X"}
        payload = ExtractedPayload(fields=fields, lyric_block="00:01.00 a\n")
        fields["title"] = "Y"
        assert payload.get("title") == "X"

    def test_form_feed_does_not_split_lines(self):
        body = "```lrc\n00:01.00 a\x0cb\n```\n"
        assert extract_payload(body).lyric_block == "00:01.00 a\x0cb\n"


# ---------------------------------------------------------------------------
# Template failures
# ---------------------------------------------------------------------------

class TestExtractionErrors:
    def test_missing_lyric_block(self):
        with pytest.raises(ExtractionError) as exc:
            extract_payload(_body("Title: X", "Artist: Y", "00:01.00 not fenced"))
        assert exc.value.kind == MISSING_SECTION
        assert exc.value.rule_id == "missing-section"

    def test_only_unrelated_code_block(self):
        with pytest.raises(ExtractionError) as exc:
            extract_payload(_body("### Notes", "```", "00:01.00 a", "```"))
        assert exc.value.kind == MISSING_SECTION

    def test_unterminated_fence(self):
        with pytest.raises(ExtractionError) as exc:
            extract_payload(_body("### Lyrics", "```", "00:01.00 a"))
        assert exc.value.kind == MALFORMED_TEMPLATE
        assert "never closed" in exc.value.message

    def test_two_lyric_blocks(self):
        with pytest.raises(ExtractionError) as exc:
            extract_payload(_body("```lrc", "00:01.00 a", "```", "```lrc", "00:02.00 b", "```"))
        assert exc.value.kind == MALFORMED_TEMPLATE

    @pytest.mark.parametrize("body", ["", "   \n\t\n"])
    def test_empty_body(self, body):
        with pytest.raises(ExtractionError) as exc:
            extract_payload(body)
        assert exc.value.kind == MALFORMED_TEMPLATE

    def test_empty_lyric_block(self):
        with pytest.raises(ExtractionError) as exc:
            extract_payload(_body("### Lyrics", "```", "   ", "```"))
        assert exc.value.kind == MISSING_FIELD
        assert exc.value.field == "lyrics"
        assert exc.value.rule_id == "missing-field"


class TestHelpers:
    @pytest.mark.parametrize("label", ["TrackID", "Track ID", "track_id", "track-id", "TRACKID"])
    def test_normalize_field_name(self, label):
        assert normalize_field_name(label) == "trackid"

    def test_split_lines_keeps_terminators(self):
        assert split_lines("a\r\nb\nc\rd") == ["a\r\n", "b\n", "c\r", "d"]

    def test_split_lines_empty(self):
        assert split_lines("") == []
