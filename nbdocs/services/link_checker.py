"""
Validate that relative links in published markdown resolve to existing files.

Rendered pages reference their figures as `![png](name_files/name_3_0.png)`;
a page published without its asset directory shows broken images. Links with
a scheme (`https:`, `mailto:`), a host, or only a `#fragment` are not local
files and are skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List
from urllib.parse import unquote, urlsplit

logger = logging.getLogger(__name__)

# [text](target) and ![alt](target), with an optional "title" or 'title'
LINK_RE = re.compile(r"""\[[^\]]*\]\(\s*<?([^\s)>]+)>?(?:\s+(?:"[^"]*"|'[^']*'))?\s*\)""")


@dataclass(frozen=True)
class BrokenLink:
    """A link in `document` whose `target` cannot be found."""

    document: Path
    target: str
    reason: str


def is_relative_link(target: str) -> bool:
    """True for links naming a local file."""
    parts = urlsplit(target.strip())
    return bool(parts.path) and not parts.scheme and not parts.netloc


def iter_link_targets(text: str) -> Iterator[str]:
    for match in LINK_RE.finditer(text):
        yield match.group(1)


def check_file(md: Path) -> List[BrokenLink]:
    """Check the relative links of one markdown file."""
    errors: List[BrokenLink] = []
    for target in iter_link_targets(md.read_text(encoding="utf-8")):
        if not is_relative_link(target):
            continue
        local_path = unquote(urlsplit(target).path)
        if not (md.parent / local_path).exists():
            errors.append(BrokenLink(document=md, target=target, reason="target does not exist"))
    return errors


def check_links(publish_dir: Path) -> List[BrokenLink]:
    """Check every markdown file under the publish directory."""
    publish_dir = Path(publish_dir)
    if not publish_dir.is_dir():
        logger.warning(f"Publish directory does not exist: {publish_dir}")
        return []

    errors: List[BrokenLink] = []
    for md in sorted(publish_dir.rglob("*.md")):
        errors.extend(check_file(md))

    if errors:
        logger.warning(f"Found {len(errors)} broken relative link(s) in {publish_dir}")
    return errors
