"""Shared pytest configuration.

Log and data directories are redirected to a temporary location before any
application module reads its configuration.
"""

import os
import tempfile

_scratch = tempfile.mkdtemp(prefix="papercenter-tests-")
os.environ.setdefault("LOG_DIR", os.path.join(_scratch, "logs"))
os.environ.setdefault("DATA_DIR", os.path.join(_scratch, "data"))

import pytest  # noqa: E402

from corpus_factory import sample_corpus  # noqa: E402


@pytest.fixture
def corpus():
    """A fresh copy of the sample corpus."""
    return sample_corpus()
