"""
Feature track data model.

A ``TrackState`` is one observation of a physical point on one frame, a
``Track`` is the frame-ordered history of observations of one point and a
``TrackSet`` is an immutable snapshot of all tracks at one point in time.
"""
from bisect import bisect_left
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import torch

from ..feature_extraction.base import KeyPoint


@dataclass(frozen=True, eq=False)
class TrackState:
    """Observation of a track on a single frame."""

    frame: int  # Frame number of the observation
    feature: KeyPoint  # Detected feature
    descriptor: Optional[torch.Tensor] = None  # Descriptor of the feature (D,)


class Track:
    """Represents a feature tracked across multiple frames.

    States are kept sorted by frame number with at most one state per frame.
    Tracks only grow through ``append`` and ``insert``."""

    def __init__(self, track_id: int, states: Optional[Iterable[TrackState]] = None):
        """
        Initialize a track.

        Args:
            track_id: Unique identifier for this track
            states: Initial states, in any order (must not share a frame)
        """
        self.id = track_id
        self._states: List[TrackState] = []
        self._frames: List[int] = []

        for state in states or []:
            if not (self.append(state) or self.insert(state)):
                raise ValueError(
                    f"Track {track_id} given more than one state on frame {state.frame}"
                )

    @property
    def states(self) -> Tuple[TrackState, ...]:
        """States of the track ordered by frame."""
        return tuple(self._states)

    def first_frame(self) -> Optional[int]:
        """Get the first frame on which the track is observed."""
        return self._frames[0] if self._frames else None

    def last_frame(self) -> Optional[int]:
        """Get the last frame on which the track is observed."""
        return self._frames[-1] if self._frames else None

    def frames(self) -> List[int]:
        """Get the frame numbers of all states."""
        return list(self._frames)

    def size(self) -> int:
        """Get the number of states."""
        return len(self._states)

    def empty(self) -> bool:
        return not self._states

    def append(self, state: TrackState) -> bool:
        """
        Append a state after the last state of the track.

        Args:
            state: State to append

        Returns:
            True if the state was appended, False if its frame is not after
            the current last frame
        """
        if self._frames and state.frame <= self._frames[-1]:
            return False
        self._states.append(state)
        self._frames.append(state.frame)
        return True

    def insert(self, state: TrackState) -> bool:
        """
        Insert a state in frame order.

        Args:
            state: State to insert

        Returns:
            True if the state was inserted, False if the track already has a
            state on that frame
        """
        idx = bisect_left(self._frames, state.frame)
        if idx < len(self._frames) and self._frames[idx] == state.frame:
            return False
        self._states.insert(idx, state)
        self._frames.insert(idx, state.frame)
        return True

    def state_at(self, frame: int) -> Optional[TrackState]:
        """
        Get the state on a frame.

        Args:
            frame: Frame number

        Returns:
            The state on that frame, or None
        """
        idx = bisect_left(self._frames, frame)
        if idx < len(self._frames) and self._frames[idx] == frame:
            return self._states[idx]
        return None

    def has_frame(self, frame: int) -> bool:
        return self.state_at(frame) is not None

    def clone(self) -> "Track":
        """Copy the track; states are shared since they are immutable."""
        track = Track(self.id)
        track._states = list(self._states)
        track._frames = list(self._frames)
        return track

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[TrackState]:
        return iter(self._states)

    def __repr__(self) -> str:
        return f"Track(id={self.id}, frames={self._frames})"


class TrackSet:
    """Immutable snapshot of a collection of tracks.

    Per-frame views (``frame_features``, ``frame_descriptors``) follow the
    order of ``tracks()``, so index ``i`` of a projection always refers to the
    ``i``-th track of the set it was taken from."""

    def __init__(self, tracks: Iterable[Track] = ()):
        """
        Initialize a track set.

        Args:
            tracks: Tracks of the set; ids must be unique
        """
        self._tracks: Tuple[Track, ...] = tuple(tracks)
        self._by_id: Dict[int, Track] = {}
        for track in self._tracks:
            if track.id in self._by_id:
                raise ValueError(f"Duplicate track id {track.id} in track set")
            self._by_id[track.id] = track

        # Lazily computed, scoped to this snapshot
        self._max_track_id: Optional[int] = None
        self._frame_ids: Optional[List[int]] = None

    def tracks(self) -> List[Track]:
        """Get the tracks of the set in order."""
        return list(self._tracks)

    def size(self) -> int:
        return len(self._tracks)

    def empty(self) -> bool:
        return not self._tracks

    def get_track(self, track_id: int) -> Optional[Track]:
        """Get a track by id, or None."""
        return self._by_id.get(track_id)

    def all_track_ids(self) -> List[int]:
        """Get the ids of all tracks in ascending order."""
        return sorted(self._by_id)

    def max_track_id(self) -> Optional[int]:
        """Get the largest track id, or None for an empty set."""
        if self._max_track_id is None and self._by_id:
            self._max_track_id = max(self._by_id)
        return self._max_track_id

    def next_track_id(self) -> int:
        """Get the id to use for the next new track."""
        max_id = self.max_track_id()
        return 0 if max_id is None else max_id + 1

    def all_frame_ids(self) -> List[int]:
        """Get the frame numbers holding at least one state, ascending."""
        if self._frame_ids is None:
            frames = set()
            for track in self._tracks:
                frames.update(track.frames())
            self._frame_ids = sorted(frames)
        return list(self._frame_ids)

    def first_frame(self) -> Optional[int]:
        frames = self.all_frame_ids()
        return frames[0] if frames else None

    def last_frame(self) -> Optional[int]:
        """Get the largest frame number holding any state."""
        frames = self.all_frame_ids()
        return frames[-1] if frames else None

    def active_tracks(self, frame: Optional[int] = None) -> "TrackSet":
        """
        Get the tracks observed on a frame.

        Args:
            frame: Frame number (defaults to the last frame)

        Returns:
            Track set holding the tracks with a state on that frame, in order
        """
        if frame is None:
            frame = self.last_frame()
        return TrackSet(t for t in self._tracks if t.has_frame(frame))

    def inactive_tracks(self, frame: Optional[int] = None) -> "TrackSet":
        """Get the tracks not observed on a frame (defaults to the last frame)."""
        if frame is None:
            frame = self.last_frame()
        return TrackSet(t for t in self._tracks if not t.has_frame(frame))

    def frame_states(self, frame: int) -> List[TrackState]:
        """Get the states on a frame in track order."""
        states = []
        for track in self._tracks:
            state = track.state_at(frame)
            if state is not None:
                states.append(state)
        return states

    def frame_features(self, frame: int) -> List[KeyPoint]:
        """Get the features on a frame in track order."""
        return [state.feature for state in self.frame_states(frame)]

    def frame_descriptors(self, frame: int) -> torch.Tensor:
        """
        Get the descriptors on a frame in track order.

        Args:
            frame: Frame number

        Returns:
            Tensor of stacked descriptors (N, D); an empty tensor when there
            are no states on the frame or any state lacks a descriptor
        """
        descriptors = [state.descriptor for state in self.frame_states(frame)]
        if not descriptors or any(d is None for d in descriptors):
            return torch.empty((0, 0))
        return torch.stack(descriptors)

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(self._tracks)

    def __contains__(self, track_id: Any) -> bool:
        return track_id in self._by_id

    def __repr__(self) -> str:
        return f"TrackSet(num_tracks={len(self._tracks)}, frames={self.first_frame()}..{self.last_frame()})"
