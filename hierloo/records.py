"""Observation containers for the save-rate and polling examples."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy import special


def _digest(*arrays: np.ndarray, labels: Sequence[str] = ()) -> str:
    h = hashlib.sha256()
    for array in arrays:
        array = np.ascontiguousarray(array)
        h.update(str(array.dtype).encode())
        h.update(str(array.shape).encode())
        h.update(array.tobytes())
    for label in labels:
        h.update(label.encode())
        h.update(b"\0")
    return h.hexdigest()


@dataclass(frozen=True)
class ShotData:
    """Binary shot outcomes, one entry per shot faced."""

    group_idx: np.ndarray
    saved: np.ndarray
    groups: tuple[str, ...]
    true_rates: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        group_idx = np.asarray(self.group_idx, dtype=int)
        saved = np.asarray(self.saved, dtype=int)
        if group_idx.ndim != 1 or saved.ndim != 1:
            raise ValueError("group_idx and saved must be one-dimensional.")
        if group_idx.shape != saved.shape:
            raise ValueError("group_idx and saved must have the same length.")
        if not self.groups:
            raise ValueError("At least one group is required.")
        if group_idx.size and (group_idx.min() < 0 or group_idx.max() >= len(self.groups)):
            raise ValueError("group_idx contains indices outside the group list.")
        if not np.isin(saved, (0, 1)).all():
            raise ValueError("saved must only contain 0 and 1.")
        if self.true_rates is not None:
            rates = np.asarray(self.true_rates, dtype=float)
            if rates.shape != (len(self.groups),):
                raise ValueError("true_rates needs one entry per group.")
            if np.any((rates < 0) | (rates > 1)):
                raise ValueError("true_rates must lie within [0, 1].")
            object.__setattr__(self, "true_rates", rates)
        object.__setattr__(self, "group_idx", group_idx)
        object.__setattr__(self, "saved", saved)
        object.__setattr__(self, "groups", tuple(self.groups))

    @property
    def n_shots(self) -> int:
        return int(self.saved.size)

    @property
    def n_groups(self) -> int:
        return len(self.groups)

    @property
    def pooled_rate(self) -> float:
        return float(self.saved.mean())

    def counts(self) -> tuple[np.ndarray, np.ndarray]:
        """Shots faced and saves made per group."""
        shots = np.bincount(self.group_idx, minlength=self.n_groups)
        saves = np.bincount(self.group_idx, weights=self.saved, minlength=self.n_groups).astype(int)
        return shots, saves

    def summary(self) -> pd.DataFrame:
        """Per-group totals with the raw rate and the uniform-prior posterior mean."""
        shots, saves = self.counts()
        with np.errstate(invalid="ignore", divide="ignore"):
            raw = saves / shots
        frame = pd.DataFrame(
            {
                "group": list(self.groups),
                "shots": shots,
                "saves": saves,
                "raw_rate": raw,
                "closed_form_mean": (saves + 1) / (shots + 2),
            }
        )
        if self.true_rates is not None:
            frame["true_rate"] = self.true_rates
        return frame

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "group": [self.groups[i] for i in self.group_idx],
                "saved": self.saved,
            }
        )

    def fingerprint(self) -> str:
        return _digest(self.group_idx, self.saved, labels=self.groups)


@dataclass(frozen=True)
class PollData:
    """Successes out of a fixed number of respondents, one row per poll."""

    day: np.ndarray
    successes: np.ndarray
    trials: int
    true_latent: Optional[np.ndarray] = None
    true_mu: Optional[float] = None

    def __post_init__(self) -> None:
        day = np.asarray(self.day, dtype=int)
        successes = np.asarray(self.successes, dtype=int)
        if day.ndim != 1 or day.shape != successes.shape:
            raise ValueError("day and successes must be one-dimensional and of equal length.")
        if day.size == 0:
            raise ValueError("At least one poll is required.")
        if np.any(np.diff(day) <= 0):
            raise ValueError("Poll days must be strictly increasing.")
        if self.trials <= 0:
            raise ValueError("trials must be positive.")
        if np.any((successes < 0) | (successes > self.trials)):
            raise ValueError("successes must lie within [0, trials].")
        object.__setattr__(self, "day", day)
        object.__setattr__(self, "successes", successes)
        if self.true_latent is not None:
            object.__setattr__(self, "true_latent", np.asarray(self.true_latent, dtype=float))

    @property
    def n_polls(self) -> int:
        return int(self.day.size)

    @property
    def elapsed(self) -> np.ndarray:
        """Days since the previous poll; zero for the first one."""
        return np.diff(self.day, prepend=self.day[0])

    @property
    def true_prob(self) -> Optional[np.ndarray]:
        if self.true_latent is None or self.true_mu is None:
            return None
        return special.expit(self.true_mu + self.true_latent)

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(
            {
                "day": self.day,
                "successes": self.successes,
                "trials": self.trials,
                "share": self.successes / self.trials,
            }
        )
        if self.true_prob is not None:
            frame["true_share"] = self.true_prob
        return frame

    def fingerprint(self) -> str:
        return _digest(self.day, self.successes, np.asarray([self.trials]))
