"""HTML document access behind a swappable query interface."""
from cspgen.document.adapter import DocumentQuery, Element, SoupDocument, parse_document

__all__ = ["DocumentQuery", "Element", "SoupDocument", "parse_document"]
