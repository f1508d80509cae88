"""Parser for YAML front matter, plus the write-path policy for notes."""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

NOTE_EXTENSION = ".md"
BOM = "\ufeff"

# Opening fence, YAML block (possibly empty), closing fence, then blank lines
FRONTMATTER_PATTERN = re.compile(
    r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)(?:[ \t]*\r?\n)*",
    re.DOTALL,
)


@dataclass
class ParsedFrontmatter:
    """Result of splitting a document into front matter and body.

    ``metadata`` is None when the block is absent or is not a valid YAML
    mapping; ``raw`` keeps the verbatim block in that case so a later
    write can carry it forward untouched.
    """

    metadata: dict | None
    body: str
    raw: str | None
    has_frontmatter: bool


def parse_frontmatter(content: str) -> ParsedFrontmatter:
    """
    Parse YAML front matter from markdown content.

    Args:
        content: The full document content

    Returns:
        ParsedFrontmatter with metadata, body and raw block
    """
    text = content[1:] if content.startswith(BOM) else content
    if not text.startswith("---"):
        return ParsedFrontmatter(metadata=None, body=content, raw=None, has_frontmatter=False)

    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        return ParsedFrontmatter(metadata=None, body=content, raw=None, has_frontmatter=False)

    raw = match.group(1) or ""
    metadata: dict | None = None
    try:
        loaded = yaml.safe_load(raw) if raw.strip() else {}
        if isinstance(loaded, dict):
            metadata = loaded
        else:
            logger.debug("Front matter is not a mapping, keeping raw block")
    except yaml.YAMLError as e:
        logger.debug("Invalid YAML front matter: %s", e)

    return ParsedFrontmatter(
        metadata=metadata,
        body=text[match.end():],
        raw=raw,
        has_frontmatter=True,
    )


def build_frontmatter(metadata: dict) -> str:
    """Serialize metadata as a fenced block followed by a blank line."""
    yaml_text = yaml.safe_dump(
        metadata,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=120,
    )
    return f"---\n{yaml_text}---\n\n"


def strip_frontmatter(content: str) -> str:
    """Remove YAML front matter from content."""
    parsed = parse_frontmatter(content)
    return parsed.body


def extract_for_index(content: str, extension: str) -> tuple[str, str]:
    """
    Split content into (front_matter_text, body) for the search index.

    Only note files carry front matter. Parsed metadata is rendered as JSON
    so keys and values are searchable; an unparseable block is indexed raw.
    """
    if extension.lower() != NOTE_EXTENSION:
        return "", content

    parsed = parse_frontmatter(content)
    if not parsed.has_frontmatter:
        return "", content

    if parsed.metadata is not None:
        frontmatter_text = json.dumps(parsed.metadata, indent=2, ensure_ascii=False, default=str)
    else:
        frontmatter_text = parsed.raw or ""
    return frontmatter_text, parsed.body


def format_timestamp(moment: datetime | None = None) -> str:
    """Format a local time as ``YYYY-MM-DD HHmm``."""
    return (moment or datetime.now()).strftime("%Y-%m-%d %H%M")


def merge_defaults(
    system: dict[str, Any] | None,
    user: dict[str, Any] | None,
    synthesized: dict[str, Any],
) -> dict[str, Any]:
    """Merge front matter sources; later sources win on key collision.

    Order: synthesized fields, then system defaults, then user defaults.
    """
    merged = dict(synthesized)
    merged.update(system or {})
    merged.update(user or {})
    return merged


def synthesize_frontmatter(
    filename: str,
    system: dict[str, Any] | None = None,
    user: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build fresh front matter for a new or legacy note."""
    timestamp = format_timestamp(now)
    synthesized = {
        "title": Path(filename).stem,
        "created_timestamp": timestamp,
        "modified_timestamp": timestamp,
    }
    return merge_defaults(system, user, synthesized)


def apply_frontmatter_policy(
    content: str,
    filename: str,
    previous_content: str | None,
    system: dict[str, Any] | None = None,
    user: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> str:
    """
    Ensure a note being saved carries front matter.

    Content that already has a block is stored as-is. Otherwise the block of
    the existing file is carried forward (structured if parseable, verbatim
    if not), and only when there is none a fresh block is synthesized.

    Args:
        content: Content being saved
        filename: Relative name of the target file
        previous_content: Current on-disk content, or None for a new file
        system: System-level front matter defaults
        user: User-level front matter defaults
        now: Clock override for the synthesized timestamps

    Returns:
        The content to persist
    """
    if Path(filename).suffix.lower() != NOTE_EXTENSION:
        return content

    if parse_frontmatter(content).has_frontmatter:
        return content

    existing = parse_frontmatter(previous_content) if previous_content is not None else None
    if existing is not None and existing.has_frontmatter:
        if existing.metadata is not None:
            return f"{build_frontmatter(existing.metadata)}{content}"
        return f"---\n{existing.raw}\n---\n\n{content}"

    frontmatter = synthesize_frontmatter(filename, system, user, now)
    return f"{build_frontmatter(frontmatter)}{content}"
