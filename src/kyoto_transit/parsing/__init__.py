"""Extraction of routes from upstream result pages."""

from .packed import PackedSegmentDecoder, extract_packed_strings
from .reconciler import ItineraryReconciler, RoutePageParser, has_no_results
from .timetable import TimetableFragmentDecoder, resolve_clock

__all__ = [
    "ItineraryReconciler",
    "PackedSegmentDecoder",
    "RoutePageParser",
    "TimetableFragmentDecoder",
    "extract_packed_strings",
    "has_no_results",
    "resolve_clock",
]
