"""Cyclic reduction for bordered block bidiagonal linear systems, with
ABD/BABD helpers and a demo command."""

__version__ = "0.1.0"
__all__ = ["aux", "bordered_matrix", "bordered", "demo"]