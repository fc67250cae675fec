"""Read and write YAML frontmatter blocks in markdown notes."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml


_FRONTMATTER_PATTERN = re.compile(r"^---[ \t]*\n(?:(.*?)\n)?---[ \t]*(?:\n|$)(.*)", re.DOTALL)


class FrontmatterParseError(ValueError):
    """Raised when markdown frontmatter exists but is not valid YAML mapping."""


def split_frontmatter(text: str) -> tuple[str | None, str]:
    """Split a markdown file into (frontmatter_text, body).

    Returns (None, full_text) if no frontmatter is found.
    """
    match = _FRONTMATTER_PATTERN.match(text)
    if not match:
        return None, text
    return match.group(1) or "", match.group(2)


def rebuild_file(fm_dict: dict, body: str) -> str:
    """Reconstruct a markdown file from frontmatter dict + body."""
    if not fm_dict:
        return body
    fm_text = yaml.safe_dump(fm_dict, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return f"---\n{fm_text}---\n{body}"


def load_frontmatter_dict(fm_text: str, file_path: Path | str) -> dict:
    """Parse YAML frontmatter and ensure it is a mapping."""
    try:
        parsed = yaml.safe_load(fm_text) or {}
    except yaml.YAMLError as exc:
        raise FrontmatterParseError(f"Invalid YAML frontmatter in {file_path}") from exc
    if not isinstance(parsed, dict):
        raise FrontmatterParseError(f"Expected mapping frontmatter in {file_path}")
    return parsed


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str, bool]:
    """Lenient read: broken frontmatter reads as empty."""
    fm_text, body = split_frontmatter(text)
    if fm_text is None:
        return {}, text, False
    try:
        fm = yaml.safe_load(fm_text) or {}
    except yaml.YAMLError:
        fm = {}
    if not isinstance(fm, dict):
        fm = {}
    return {str(k): v for k, v in fm.items()}, body, True


def aliases_from_frontmatter(fm: dict[str, Any]) -> list[str]:
    raw = fm.get("aliases")
    if raw is None:
        raw = fm.get("alias")
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    return [item.strip() for item in raw if isinstance(item, str) and item.strip()]
