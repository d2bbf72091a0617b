"""SQLite-backed content graph: node storage, export loading and queries."""

from notegraph.store.builder import LoadStats, extract_refs, load_export
from notegraph.store.models import GraphBase, GraphNode, GraphState, NodeRef
from notegraph.store.query import SqlGraphStore
from notegraph.store.session import get_graph_session, open_graph_engine

__all__ = [
    "GraphBase",
    "GraphNode",
    "GraphState",
    "LoadStats",
    "NodeRef",
    "SqlGraphStore",
    "extract_refs",
    "get_graph_session",
    "load_export",
    "open_graph_engine",
]
