"""SQLAlchemy ORM models for the local note graph."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class GraphBase(DeclarativeBase):
    """Base class for graph ORM models."""

    pass


class GraphNode(GraphBase):
    """A page or block of the note graph.

    Pages carry their title in ``content`` and have no parent; top-level
    blocks have the page uid as ``parent_uid``.
    """

    __tablename__ = "nodes"

    uid: Mapped[str] = mapped_column(String(64), primary_key=True)
    content: Mapped[str | None] = mapped_column(Text)
    page_uid: Mapped[str | None] = mapped_column(String(64))
    page_title: Mapped[str | None] = mapped_column(Text)
    parent_uid: Mapped[str | None] = mapped_column(String(64))
    order: Mapped[int] = mapped_column("sort_order", Integer, default=0, server_default="0")
    created_at: Mapped[datetime | None] = mapped_column(DateTime)
    modified_at: Mapped[datetime | None] = mapped_column(DateTime)
    is_page: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0")
    is_daily: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0")

    __table_args__ = (
        Index("ix_nodes_parent_uid", "parent_uid"),
        Index("ix_nodes_page_uid", "page_uid"),
        Index("ix_nodes_modified_at", "modified_at"),
    )

    def __repr__(self) -> str:
        preview = (self.content or "")[:30]
        return f"<GraphNode(uid='{self.uid}', content='{preview}')>"


class NodeRef(GraphBase):
    """A reference from a block to a page (lowercased title) or another block."""

    __tablename__ = "node_refs"

    source_uid: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(8), primary_key=True)
    target: Mapped[str] = mapped_column(String(512), primary_key=True)

    __table_args__ = (Index("ix_node_refs_kind_target", "kind", "target"),)

    def __repr__(self) -> str:
        return f"<NodeRef(source='{self.source_uid}', {self.kind}='{self.target}')>"


class GraphState(GraphBase):
    """Singleton row describing the last import."""

    __tablename__ = "graph_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    source_path: Mapped[str | None] = mapped_column(Text)
    loaded_at: Mapped[str | None] = mapped_column(String(32))
    page_count: Mapped[int | None] = mapped_column(Integer)
    block_count: Mapped[int | None] = mapped_column(Integer)

    def __repr__(self) -> str:
        return f"<GraphState(pages={self.page_count}, blocks={self.block_count})>"
