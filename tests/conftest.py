# tests/conftest.py
import os
import sys
from unittest.mock import MagicMock

import pytest

# Tests never talk to a real MongoDB
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_NAME", None)
os.environ.pop("SOLAR_CONFIG_PATH", None)

# Make the flat top-level modules importable
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, ROOT)


@pytest.fixture
def make_collection():
    """Build a MagicMock pymongo collection returning ``docs`` from find()."""

    def _make(docs, total=None):
        cursor = MagicMock(name="cursor")
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.__iter__.return_value = iter(list(docs))

        collection = MagicMock(name="collection")
        collection.find.return_value = cursor
        collection.count_documents.return_value = len(docs) if total is None else total
        return collection

    return _make


@pytest.fixture(autouse=True)
def no_database(monkeypatch):
    import database

    monkeypatch.setattr(database, "db", None)
    yield
