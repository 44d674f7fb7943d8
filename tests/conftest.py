"""Shared fixtures for save engine tests."""

from __future__ import annotations

import pytest

from save_engine.models.save_data import ComponentRecord, SaveData, StorageType
from save_engine.models.save_file import SaveMetadata


@pytest.fixture
def sample_data() -> SaveData:
    return SaveData(
        game_name="Test Game",
        player_name="Test Player",
        version="0.3.0",
        level=3,
        playtime=5400,
        components=[
            ComponentRecord("Position", StorageType.DENSE_VEC, {"1": {"x": 3, "y": 4}}),
            ComponentRecord("CombatStats", StorageType.VEC, {"1": {"hp": 20, "power": 5}}),
        ],
        resources={"gold": 100, "turn": 42},
        metadata={"difficulty": "Normal"},
    )


@pytest.fixture
def sample_metadata() -> SaveMetadata:
    return SaveMetadata(save_name="Test Save", player_name="Test Player", character_level=3)
