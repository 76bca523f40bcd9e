"""Shared test fixtures and configuration."""

import os

import pytest

from caselaw_search.config import Settings
from caselaw_search.search.snapshot import SnapshotHandle
from caselaw_search.service_layer.search_service import SearchService


ENV_PREFIX = "CASELAW_SEARCH_"

SCENARIO_DOCUMENTS = [
    {
        "id": 1,
        "jurisdiction": "United States",
        "path": "brown-v-board",
        "case_type": "Civil",
        "text": "separate educational facilities are inherently unequal",
    },
    {
        "id": 2,
        "jurisdiction": "European Union",
        "path": "schrems-v-facebook",
        "case_type": "Privacy",
        "text": "Adequacy of protection provided by Safe Harbor principles",
    },
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Drop any CASELAW_SEARCH_* variables so Settings sees its defaults."""
    for key in list(os.environ):
        if key.upper().startswith(ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return Settings()


@pytest.fixture
def scenario_documents():
    return [dict(document) for document in SCENARIO_DOCUMENTS]


@pytest.fixture
def handle(scenario_documents):
    """Snapshot handle already holding the two scenario documents."""
    snapshot_handle = SnapshotHandle(strict_invariants=True)
    snapshot_handle.ingest_batch(scenario_documents)
    return snapshot_handle


@pytest.fixture
def service(handle, settings):
    return SearchService(handle, settings)


@pytest.fixture
def large_corpus():
    """Several hundred multi-line documents for deadline and ranking tests."""
    documents = []
    for doc_id in range(400):
        lines = [f"paragraph {line} of case {doc_id} concerning liability and negligence" for line in range(40)]
        documents.append(
            {
                "id": doc_id,
                "jurisdiction": "United Kingdom" if doc_id % 2 else "Ireland",
                "path": f"case-{doc_id}",
                "case_type": "Tort",
                "text": "\n".join(lines),
            }
        )
    return documents
