"""Shared fixtures for dirkeeper tests."""

import pytest

from dirkeeper.sync.catalog import Catalog


@pytest.fixture()
def tree(tmp_path):
    """Build the sample tree::

        a/
          file1.txt   "hello"
          file2.jpg   <binary>
          .hidden
          b/
            file3.txt
    """
    root = tmp_path / "a"
    root.mkdir()
    (root / "file1.txt").write_text("hello")
    (root / "file2.jpg").write_bytes(b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01")
    (root / ".hidden").write_text("secret")
    (root / "b").mkdir()
    (root / "b" / "file3.txt").write_text("nested")
    return root


@pytest.fixture()
def catalog(tmp_path):
    """Create a Catalog with a temporary database."""
    with Catalog(tmp_path / "catalog.db") as c:
        yield c
