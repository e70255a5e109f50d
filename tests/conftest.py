"""Shared fixtures for the hierloo tests."""

from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from hierloo.config import SamplerConfig
from hierloo.records import ShotData


def shots_from_counts(saves: list[int], shots: list[int], groups: tuple[str, ...]) -> ShotData:
    group_idx = np.repeat(np.arange(len(groups)), shots)
    saved = np.concatenate([np.r_[np.ones(s, dtype=int), np.zeros(n - s, dtype=int)] for s, n in zip(saves, shots)])
    return ShotData(group_idx=group_idx, saved=saved, groups=groups)


@pytest.fixture(scope="session")
def counted_shots() -> ShotData:
    # raw rates 0.75, 0.375, 0.875, 0.25
    return shots_from_counts([30, 15, 35, 10], [40, 40, 40, 40], ("A", "B", "C", "D"))


@pytest.fixture
def fast_config() -> SamplerConfig:
    return SamplerConfig(draws=500, tune=500, chains=1, random_seed=11)
