"""Row store and document storage collaborators."""

from docgrid.storage.base import DocumentStorage, RowStore
from docgrid.storage.documents import LocalDocumentStorage
from docgrid.storage.memory import InMemoryRowStore
from docgrid.storage.sql import SqlRowStore

__all__ = [
    "DocumentStorage",
    "RowStore",
    "LocalDocumentStorage",
    "InMemoryRowStore",
    "SqlRowStore",
]
