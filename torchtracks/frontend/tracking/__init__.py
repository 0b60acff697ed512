"""
Tracking module for the torchtracks library.

This module contains the feature track data model, the track merge procedure,
the frame-to-frame track extension engine and loop closers.
"""

from .base import BaseTracker, CopyOnWriteTracks
from .core import CoreFeatureTracker
from .loop_closure import BaseLoopCloser, ExhaustiveLoopCloser
from .merge import (
    ReplacementMap,
    TrackPair,
    find_survivor,
    merge_tracks,
    remove_replaced_tracks,
    splice_track,
)
from .track import Track, TrackSet, TrackState

__all__ = [
    "TrackState",
    "Track",
    "TrackSet",
    "TrackPair",
    "ReplacementMap",
    "find_survivor",
    "splice_track",
    "merge_tracks",
    "remove_replaced_tracks",
    "BaseTracker",
    "CopyOnWriteTracks",
    "CoreFeatureTracker",
    "BaseLoopCloser",
    "ExhaustiveLoopCloser",
]
