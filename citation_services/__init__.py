"""
citation_services -- outer facade over the citation kernel.

``CitationDesk`` is the single entry point for callers such as an HTTP
layer.  It wires configuration into the kernel services and exposes the
external operations.
"""

from citation_services.desk import CitationDesk

__all__ = ["CitationDesk"]
