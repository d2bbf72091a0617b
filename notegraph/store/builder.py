"""Load a Roam Research JSON export into the graph database."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert

from notegraph.exceptions import GraphImportError
from notegraph.store.models import GraphNode, GraphState, NodeRef

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Reference extraction
# ---------------------------------------------------------------------------

_PAGE_LINK_RE = re.compile(r"\[\[([^\[\]]+)\]\]")
_TAG_RE = re.compile(r"(?<![\w#\[])#([\w-]+)")
_ATTRIBUTE_RE = re.compile(r"^\s*([^:\n`]+?)::", re.MULTILINE)
_BLOCK_REF_RE = re.compile(r"\(\(([\w-]+)\)\)")

_DAILY_UID_RE = re.compile(r"^\d{2}-\d{2}-\d{4}$")
_DAILY_TITLE_RE = re.compile(
    r"^(January|February|March|April|May|June|July|August|September|October|November|December)"
    r" (\d{1,2})(?:st|nd|rd|th), (\d{4})$"
)
_MONTHS = {
    name: index
    for index, name in enumerate(
        (
            "January",
            "February",
            "March",
            "April",
            "May",
            "June",
            "July",
            "August",
            "September",
            "October",
            "November",
            "December",
        ),
        start=1,
    )
}


def is_daily_uid(uid: str | None) -> bool:
    """Daily-note pages have ``MM-DD-YYYY`` uids."""
    return bool(uid) and _DAILY_UID_RE.match(uid) is not None


def extract_refs(content: str | None) -> set[tuple[str, str]]:
    """Extract ``(kind, target)`` references from block content.

    Page targets are lowercased titles from ``[[Title]]``, ``#[[Title]]``,
    ``#Tag`` and ``Title::``; block targets are uids from ``((uid))``.
    """
    if not content:
        return set()
    refs: set[tuple[str, str]] = set()
    for pattern in (_PAGE_LINK_RE, _TAG_RE, _ATTRIBUTE_RE):
        for match in pattern.finditer(content):
            title = match.group(1).strip()
            if title:
                refs.add(("page", title.casefold()))
    for match in _BLOCK_REF_RE.finditer(content):
        refs.add(("block", match.group(1)))
    return refs


def page_uid_for(page: dict[str, Any]) -> str:
    """Return the page uid, deriving one when the export omits it.

    Daily-note titles ("January 2nd, 2024") map to Roam's ``01-02-2024``.
    """
    uid = page.get("uid")
    if uid:
        return str(uid)
    title = str(page.get("title", ""))
    match = _DAILY_TITLE_RE.match(title)
    if match:
        month, day, year = _MONTHS[match.group(1)], int(match.group(2)), match.group(3)
        return f"{month:02d}-{day:02d}-{year}"
    return "page-" + hashlib.sha1(title.encode("utf-8")).hexdigest()[:12]


def _timestamp(value: Any) -> datetime | None:
    """Roam stores epoch milliseconds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Export walking
# ---------------------------------------------------------------------------


@dataclass
class LoadStats:
    pages: int = 0
    blocks: int = 0
    refs: int = 0
    skipped: int = 0


def iter_export_rows(
    pages: list[dict[str, Any]], stats: LoadStats
) -> Iterator[tuple[dict[str, Any], set[tuple[str, str]]]]:
    """Yield node rows and their references for every page and block.

    Blocks are walked with an explicit stack, so deeply nested outlines do
    not hit the recursion limit.
    """
    seen: set[str] = set()
    for page in pages:
        if not isinstance(page, dict) or not page.get("title"):
            stats.skipped += 1
            continue
        page_uid = page_uid_for(page)
        if page_uid in seen:
            logger.warning("Duplicate page uid %s (%s), skipping", page_uid, page["title"])
            stats.skipped += 1
            continue
        seen.add(page_uid)
        title = str(page["title"])
        daily = is_daily_uid(page_uid)
        stats.pages += 1
        yield (
            {
                "uid": page_uid,
                "content": title,
                "page_uid": page_uid,
                "page_title": title,
                "parent_uid": None,
                "order": 0,
                "created_at": _timestamp(page.get("create-time")),
                "modified_at": _timestamp(page.get("edit-time")),
                "is_page": True,
                "is_daily": daily,
            },
            set(),
        )

        # Reversed so pops walk the outline in document order
        top_level = page.get("children") or []
        stack = [(child, page_uid, index) for index, child in enumerate(top_level)]
        stack.reverse()
        while stack:
            block, parent_uid, position = stack.pop()
            uid = block.get("uid") if isinstance(block, dict) else None
            if not uid or uid in seen:
                stats.skipped += 1
                continue
            seen.add(uid)
            content = block.get("string", "")
            refs = extract_refs(content)
            stats.blocks += 1
            stats.refs += len(refs)
            yield (
                {
                    "uid": uid,
                    "content": content,
                    "page_uid": page_uid,
                    "page_title": title,
                    "parent_uid": parent_uid,
                    "order": block.get("order", position),
                    "created_at": _timestamp(block.get("create-time")),
                    "modified_at": _timestamp(block.get("edit-time")),
                    "is_page": False,
                    "is_daily": daily,
                },
                refs,
            )
            children = block.get("children") or []
            stack.extend(
                (child, uid, index) for index, child in reversed(list(enumerate(children)))
            )


def read_export(export_path: Path) -> list[dict[str, Any]]:
    """Read and sanity-check a Roam JSON export.

    Raises:
        GraphImportError: If the file is unreadable or not a list of pages.
    """
    try:
        with open(export_path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise GraphImportError(export_path, str(e)) from e
    except json.JSONDecodeError as e:
        raise GraphImportError(export_path, f"invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise GraphImportError(export_path, "expected a JSON list of pages")
    return data


def load_export(session: Session, export_path: Path) -> LoadStats:
    """Replace the graph database contents with a Roam JSON export.

    Args:
        session: Session bound to the graph database.
        export_path: Path to the ``.json`` export.

    Returns:
        Counts of loaded pages, blocks and references.

    Raises:
        GraphImportError: If the export cannot be read.
    """
    pages = read_export(export_path)
    stats = LoadStats()

    session.execute(delete(NodeRef))
    session.execute(delete(GraphNode))

    node_rows: list[dict[str, Any]] = []
    ref_rows: list[dict[str, Any]] = []
    for row, refs in iter_export_rows(pages, stats):
        node_rows.append(row)
        ref_rows.extend({"source_uid": row["uid"], "kind": k, "target": t} for k, t in refs)

    if node_rows:
        session.execute(insert(GraphNode), node_rows)
    if ref_rows:
        session.execute(insert(NodeRef), ref_rows)

    state = session.get(GraphState, 1) or GraphState(id=1)
    state.source_path = str(export_path)
    state.loaded_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    state.page_count = stats.pages
    state.block_count = stats.blocks
    session.merge(state)
    session.commit()

    logger.info(
        "Loaded %d pages, %d blocks, %d references from %s",
        stats.pages,
        stats.blocks,
        stats.refs,
        export_path,
    )
    return stats
