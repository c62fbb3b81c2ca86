"""
Shared fixtures: a seeded tracker state and a fixed clock.
"""

import copy
from datetime import datetime, timezone

import pytest

from armory.sentinela_backup.storage import InMemoryKeyValueStore, InventoryRepository, StorageKeys

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

SEED = {
    StorageKeys.MATERIALS: [
        {"id": "m1", "name": "Pistola .40", "serialNumber": "SN-001", "status": "Disponível"},
        {"id": "m2", "name": "Colete balístico", "serialNumber": "CB-778", "status": "Cautelado"},
    ],
    StorageKeys.PERSONNEL: [
        {"id": "p1", "name": "Sd. Souza", "registration": "12345"},
    ],
    StorageKeys.CAUTELAS: [
        {"id": "c1", "materialId": "m2", "personnelId": "p1", "status": "Aberta"},
    ],
    StorageKeys.LOGS: [
        {
            "id": "l1",
            "armorerName": "Sgt. Lima",
            "action": "Cautela",
            "details": "Colete balístico para Sd. Souza",
            "timestamp": "2025-02-28T10:00:00.000Z",
        },
    ],
    StorageKeys.SETTINGS: {
        "institutionName": "2º BPM",
        "theme": "dark",
        "admins": [{"id": "a1", "name": "Sgt. Lima"}],
        "backup": {"enabled": True, "frequency": "daily"},
    },
}


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def now():
    """The instant every fixed clock reports."""
    return FIXED_NOW


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def seed():
    """A fresh copy of the seeded tracker collections."""
    return copy.deepcopy(SEED)


@pytest.fixture
def kv_store(seed):
    """In-memory store holding the seeded collections."""
    return InMemoryKeyValueStore(seed)


@pytest.fixture
def repository(kv_store):
    """Repository over the seeded store, with a fixed clock."""
    return InventoryRepository(kv_store, clock=fixed_clock)
