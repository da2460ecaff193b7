from __future__ import annotations

import pytest

from clixen.models.catalog import WorkflowCatalog

from tests.fakes import InMemoryChannel, InMemoryDirectory, InMemoryKeyring


@pytest.fixture
def catalog() -> WorkflowCatalog:
    return WorkflowCatalog()


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture
def channel() -> InMemoryChannel:
    return InMemoryChannel()


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> InMemoryKeyring:
    backend = InMemoryKeyring()
    monkeypatch.setattr("clixen.core.key_manager.keyring.set_password", backend.set_password)
    monkeypatch.setattr("clixen.core.key_manager.keyring.get_password", backend.get_password)
    return backend
