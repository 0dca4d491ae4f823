"""Coordinate and nearest-stop resolution against the reference tables."""

from .coordinates import CoordinateResolver
from .nearest_stops import LANDMARK_OVERRIDES, NearestStopResolver

__all__ = ["CoordinateResolver", "LANDMARK_OVERRIDES", "NearestStopResolver"]
