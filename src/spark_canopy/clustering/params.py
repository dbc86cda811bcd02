"""Typed hyperparameters for canopy fitting."""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .distance import DistanceMetric, select_metric

__all__ = ["CanopyParams", "DEFAULT_DISTANCE_MEASURE", "DEFAULT_T1", "DEFAULT_T2"]

DEFAULT_T1 = 0.5
DEFAULT_T2 = 0.1
DEFAULT_DISTANCE_MEASURE = "Cosine"


class CanopyParams(BaseModel):
    """
    Thresholds and metric for a canopy fit.

    ``t1``/``t2`` are the loose/tight thresholds of the per-partition pass and
    ``t3``/``t4`` those of the merge pass; the latter default to the former.
    Each pair must satisfy ``tight <= loose``. Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    t1: float = Field(default=DEFAULT_T1, ge=0.0)
    t2: float = Field(default=DEFAULT_T2, ge=0.0)
    t3: Optional[float] = Field(default=None, ge=0.0)
    t4: Optional[float] = Field(default=None, ge=0.0)
    distance_measure: str = Field(default=DEFAULT_DISTANCE_MEASURE, alias="distanceMeasure")

    @field_validator("t1", "t2", "t3", "t4")
    @classmethod
    def _finite(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and not math.isfinite(value):
            raise ValueError("thresholds must be finite")
        return value

    @field_validator("distance_measure", mode="before")
    @classmethod
    def _canonical_metric(cls, value: Any) -> str:
        if value is None:
            return DEFAULT_DISTANCE_MEASURE
        return select_metric(value).name

    @model_validator(mode="after")
    def _tight_within_loose(self) -> "CanopyParams":
        for phase, (loose, tight) in (("map", self.map_thresholds), ("reduce", self.reduce_thresholds)):
            if tight > loose:
                raise ValueError(
                    f"{phase} tight threshold {tight} must not exceed loose threshold {loose}"
                )
        return self

    @classmethod
    def from_hyperparameters(cls, hyperparameters: Optional[Mapping[str, Any]] = None) -> "CanopyParams":
        """Build params from a plain mapping; missing keys take their defaults."""
        return cls.model_validate(dict(hyperparameters or {}))

    def with_overrides(self, **overrides: Any) -> "CanopyParams":
        if not overrides:
            return self
        merged = self.model_dump(exclude_none=True)
        merged.update(overrides)
        if "distanceMeasure" in overrides:
            merged.pop("distance_measure", None)
        return type(self).model_validate(merged)

    @property
    def map_thresholds(self) -> Tuple[float, float]:
        return self.t1, self.t2

    @property
    def reduce_thresholds(self) -> Tuple[float, float]:
        loose = self.t1 if self.t3 is None else self.t3
        tight = self.t2 if self.t4 is None else self.t4
        return loose, tight

    @property
    def metric(self) -> DistanceMetric:
        return select_metric(self.distance_measure)

    def broadcast_vector(self) -> np.ndarray:
        """``[t1, t2, t3, t4, metric_code]`` with merge thresholds resolved."""
        t3, t4 = self.reduce_thresholds
        return np.array([self.t1, self.t2, t3, t4, self.metric.code], dtype=np.float64)
