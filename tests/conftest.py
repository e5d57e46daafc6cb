"""Pytest configuration helpers.

This conftest ensures the project root is on `sys.path` so tests can import
the flat modules regardless of how pytest is invoked.
"""
import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from config import GenerationConfig, PipelineSettings  # noqa: E402
from llm import GenerationClient  # noqa: E402
from tests.fakes import FakeOpenAI, make_docs  # noqa: E402


@pytest.fixture
def docs():
    return make_docs(10)


@pytest.fixture
def settings():
    return PipelineSettings(max_revisions=5)


@pytest.fixture
def make_llm():
    """Returns a factory: make_llm(scripts) -> (GenerationClient, completions)."""

    def _make(scripts):
        fake = FakeOpenAI(scripts)
        client = GenerationClient(GenerationConfig(model="test-model"), client=fake)
        return client, fake.completions

    return _make
