"""notegraph: hierarchical search over a note graph."""

__version__ = "0.1.0"
