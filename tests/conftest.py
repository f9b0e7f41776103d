"""
Pytest configuration.

Adds the ``src`` directory to the module search path so tests can import the
package without installing it, and provides a fresh content cache per test so
prefix-keyed cache entries never leak between tests.
"""

import sys
from pathlib import Path

import pytest

# 添加 src 目录到 PYTHONPATH
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


@pytest.fixture
def cache():
    from langchain_research.memory.content import ContentCache

    return ContentCache()
