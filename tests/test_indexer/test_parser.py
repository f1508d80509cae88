"""Tests for the front matter parser and the note write policy."""

import json
from datetime import datetime

from notebox_mcp.indexer.parser import (
    apply_frontmatter_policy,
    build_frontmatter,
    extract_for_index,
    format_timestamp,
    merge_defaults,
    parse_frontmatter,
    strip_frontmatter,
    synthesize_frontmatter,
)

NOW = datetime(2025, 3, 7, 9, 5)


class TestStripFrontmatter:
    def test_strips_yaml_frontmatter(self):
        content = """---
title: Test
---
# Content
Body text"""
        result = strip_frontmatter(content)
        assert result == "# Content\nBody text"

    def test_preserves_content_without_frontmatter(self):
        content = "# No frontmatter\n\nJust content"
        result = strip_frontmatter(content)
        assert result == content

    def test_handles_empty_frontmatter(self):
        content = """---
---
Content"""
        result = strip_frontmatter(content)
        assert result == "Content"

    def test_handles_content_starting_with_triple_dash(self):
        content = "---not frontmatter\ncontent"
        # No fence line, so it stays as is
        result = strip_frontmatter(content)
        assert result == content

    def test_unclosed_block_is_body(self):
        content = "---\ntitle: open\nno closing fence"
        assert strip_frontmatter(content) == content


class TestParseFrontmatter:
    def test_parses_yaml_frontmatter(self):
        content = """---
title: Recon
tags: [foo, bar]
count: 3
---
# Content"""
        parsed = parse_frontmatter(content)

        assert parsed.has_frontmatter
        assert parsed.metadata == {"title": "Recon", "tags": ["foo", "bar"], "count": 3}
        assert parsed.body == "# Content"
        assert "title: Recon" in parsed.raw

    def test_strips_byte_order_mark(self):
        parsed = parse_frontmatter("\ufeff---\ntitle: BOM\n---\nbody")
        assert parsed.metadata == {"title": "BOM"}
        assert parsed.body == "body"

    def test_handles_crlf(self):
        parsed = parse_frontmatter("---\r\ntitle: Win\r\n---\r\nbody")
        assert parsed.metadata == {"title": "Win"}
        assert parsed.body == "body"

    def test_malformed_yaml_keeps_raw_block(self):
        content = "---\ntitle: [unclosed\n---\nbody"
        parsed = parse_frontmatter(content)

        assert parsed.has_frontmatter
        assert parsed.metadata is None
        assert parsed.raw == "title: [unclosed"
        assert parsed.body == "body"

    def test_non_mapping_yaml_keeps_raw_block(self):
        parsed = parse_frontmatter("---\n- a\n- b\n---\nbody")
        assert parsed.metadata is None
        assert parsed.raw == "- a\n- b"

    def test_no_frontmatter(self):
        parsed = parse_frontmatter("plain")
        assert not parsed.has_frontmatter
        assert parsed.metadata is None
        assert parsed.body == "plain"


class TestBuildFrontmatter:
    def test_has_fences_and_trailing_blank_line(self):
        block = build_frontmatter({"title": "A"})
        assert block.startswith("---\n")
        assert block.endswith("---\n\n")

    def test_roundtrip_metadata(self):
        metadata = {"title": "Note", "tags": ["x", "y"], "created_timestamp": "2025-03-07 0905"}
        parsed = parse_frontmatter(build_frontmatter(metadata) + "Body")
        assert parsed.metadata == metadata
        assert parsed.body == "Body"

    def test_keeps_key_order(self):
        block = build_frontmatter({"zeta": 1, "alpha": 2})
        assert block.index("zeta") < block.index("alpha")


class TestExtractForIndex:
    def test_note_frontmatter_becomes_json(self):
        fm_text, body = extract_for_index("---\ntitle: Port scan\n---\nFound port 22", ".md")
        assert json.loads(fm_text) == {"title": "Port scan"}
        assert body == "Found port 22"

    def test_unparseable_block_indexed_raw(self):
        fm_text, body = extract_for_index("---\nbad: [\n---\nbody", ".md")
        assert fm_text == "bad: ["
        assert body == "body"

    def test_other_extensions_untouched(self):
        content = "---\ntitle: not front matter\n---\n"
        assert extract_for_index(content, ".txt") == ("", content)

    def test_note_without_block(self):
        assert extract_for_index("just text", ".md") == ("", "just text")


class TestDefaults:
    def test_format_timestamp(self):
        assert format_timestamp(NOW) == "2025-03-07 0905"

    def test_merge_order(self):
        merged = merge_defaults(
            {"a": "system", "b": "system"},
            {"b": "user"},
            {"a": "synth", "title": "t"},
        )
        assert merged == {"a": "system", "b": "user", "title": "t"}

    def test_merge_handles_missing_maps(self):
        assert merge_defaults(None, None, {"title": "t"}) == {"title": "t"}

    def test_synthesize(self):
        fm = synthesize_frontmatter("notes/recon.md", {"document_type": "note"}, {"tags": []}, NOW)
        assert fm == {
            "title": "recon",
            "created_timestamp": "2025-03-07 0905",
            "modified_timestamp": "2025-03-07 0905",
            "document_type": "note",
            "tags": [],
        }


class TestFrontmatterPolicy:
    def test_new_note_gets_synthesized_block(self):
        result = apply_frontmatter_policy("Body", "a.md", None, {"document_type": "note"}, None, NOW)
        parsed = parse_frontmatter(result)
        assert parsed.metadata["title"] == "a"
        assert parsed.metadata["document_type"] == "note"
        assert parsed.body == "Body"

    def test_content_with_block_is_kept(self):
        content = "---\ntitle: Mine\n---\nBody"
        assert apply_frontmatter_policy(content, "a.md", None, now=NOW) == content

    def test_carries_forward_existing_block(self):
        previous = "---\ntitle: Original\ncustom: 1\n---\nOld body"
        result = apply_frontmatter_policy("New body", "a.md", previous, {"x": 1}, None, NOW)
        parsed = parse_frontmatter(result)
        assert parsed.metadata == {"title": "Original", "custom": 1}
        assert parsed.body == "New body"

    def test_carries_forward_raw_block_verbatim(self):
        previous = "---\nbad: [\n---\nOld"
        result = apply_frontmatter_policy("New", "a.md", previous, now=NOW)
        assert result == "---\nbad: [\n---\n\nNew"

    def test_existing_file_without_block_gets_synthesized(self):
        result = apply_frontmatter_policy("New", "legacy.md", "Old, no block", now=NOW)
        assert parse_frontmatter(result).metadata["title"] == "legacy"

    def test_non_note_unchanged(self):
        assert apply_frontmatter_policy("print(1)", "x.py", None, now=NOW) == "print(1)"

    def test_same_input_is_stable(self):
        first = apply_frontmatter_policy("X", "a.md", None, now=NOW)
        second = apply_frontmatter_policy("X", "a.md", first, now=datetime(2030, 1, 1))
        assert first == second
