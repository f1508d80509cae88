"""App settings and per-workspace front matter defaults."""

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LAST_WORKSPACE_KEY = "lastWorkspace"

SYSTEM_PREFERENCES_FILENAME = "system-preferences.json"
USER_PREFERENCES_FILENAME = "user-preferences.json"

DEFAULT_SYSTEM_FRONTMATTER: dict[str, Any] = {"document_type": "note"}
DEFAULT_USER_FRONTMATTER: dict[str, Any] = {"tags": []}


def load_settings(path: Path) -> dict:
    """Load app settings; a missing or unreadable file yields {}."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.error("Settings load error for %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(path: Path, settings: dict) -> None:
    """Persist app settings. Failures are logged, not raised."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(settings, indent=2), encoding="utf-8")
    except OSError as e:
        logger.error("Settings save error for %s: %s", path, e)


@dataclass
class FrontmatterDefaults:
    """The two ordered default maps merged into synthesized front matter."""

    system: dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_SYSTEM_FRONTMATTER))
    user: dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_USER_FRONTMATTER))


def _read_defaults(path: Path, fallback: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(fallback)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return merged
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable preferences %s: %s", path, e)
        return merged

    defaults = (data.get("frontMatter") or {}).get("defaults") if isinstance(data, dict) else None
    if isinstance(defaults, dict):
        merged.update(defaults)
    return merged


def load_frontmatter_defaults(meta_dir: Path) -> FrontmatterDefaults:
    """
    Read front matter defaults from the workspace preference files.

    Each file looks like ``{"frontMatter": {"defaults": {...}}}``; keys found
    there are layered over the built-in defaults.
    """
    meta_dir = Path(meta_dir)
    return FrontmatterDefaults(
        system=_read_defaults(meta_dir / SYSTEM_PREFERENCES_FILENAME, DEFAULT_SYSTEM_FRONTMATTER),
        user=_read_defaults(meta_dir / USER_PREFERENCES_FILENAME, DEFAULT_USER_FRONTMATTER),
    )
