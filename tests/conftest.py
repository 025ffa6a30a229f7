"""Shared test fixtures."""

import pytest

from rag_agent.domain.tool.milvus_search import create_milvus_search_tool

from fakes import FakeSearchService, KeywordEmbeddings


@pytest.fixture
def search_service():
    return FakeSearchService()


@pytest.fixture
def search_tool(search_service):
    return create_milvus_search_tool(search_service)


@pytest.fixture
def embeddings():
    return KeywordEmbeddings()
