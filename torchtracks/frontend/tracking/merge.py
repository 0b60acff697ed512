"""
Merging of track fragments that observe the same physical point.

``merge_tracks`` splices the history of each replaced track into the track it
is paired with and records which track survives. Survivors are resolved
union-find style, so a track replaced into a track that is itself replaced
later resolves to the final survivor.
"""
import logging
from typing import Dict, Iterable, Optional, Tuple

from .track import Track, TrackSet

TrackPair = Tuple[Track, Track]  # (keep, replace)
ReplacementMap = Dict[int, Track]  # replaced track id -> surviving track

logger = logging.getLogger(__name__)


def find_survivor(track: Track, replacement_map: ReplacementMap) -> Track:
    """
    Resolve a track to the track that currently stands in for it.

    Args:
        track: Track to resolve
        replacement_map: Map from replaced track ids to survivors; compressed
            in place along the resolved path

    Returns:
        The surviving track (``track`` itself if it was never replaced)
    """
    path = []
    survivor = track
    while survivor.id in replacement_map:
        path.append(survivor.id)
        survivor = replacement_map[survivor.id]
        if survivor.id == path[-1]:
            break

    for track_id in path:
        replacement_map[track_id] = survivor
    return survivor


def splice_track(keep: Track, replace: Track) -> int:
    """
    Copy the states of one track into another.

    States on frames already present in ``keep`` are dropped; ``keep`` is
    never overwritten.

    Args:
        keep: Track receiving the states (modified in place)
        replace: Track whose states are copied

    Returns:
        Number of states copied
    """
    copied = 0
    for state in replace:
        if keep.append(state) or keep.insert(state):
            copied += 1
    return copied


def merge_tracks(
    track_pairs: Iterable[TrackPair],
    replacement_map: Optional[ReplacementMap] = None,
) -> Tuple[int, ReplacementMap]:
    """
    Merge pairs of tracks found to observe the same point.

    The ``keep`` tracks (or their survivors) are modified in place, so callers
    must pass tracks they own rather than tracks of a published TrackSet. A
    pair is only recorded when it adds at least one state to ``keep`` (or
    ``replace`` has no states).

    Args:
        track_pairs: Ordered (keep, replace) pairs
        replacement_map: Existing replacements to extend in place (optional)

    Returns:
        Tuple of (number of merges performed, replacement map). Every key of
        the map resolves directly to its final surviving track.
    """
    if replacement_map is None:
        replacement_map = {}

    num_merged = 0
    for keep, replace in track_pairs:
        keep = find_survivor(keep, replacement_map)
        replace = find_survivor(replace, replacement_map)

        if keep.id == replace.id:
            logger.debug(f"Skipping merge of track {replace.id} into itself")
            continue

        copied = splice_track(keep, replace)
        if copied == 0 and not replace.empty():
            logger.debug(
                f"Skipping merge of track {replace.id} into track {keep.id}: "
                "every state collides"
            )
            continue
        if copied < replace.size():
            logger.debug(
                f"Dropped {replace.size() - copied} states of track {replace.id} "
                f"colliding with track {keep.id}"
            )

        replacement_map[replace.id] = keep
        num_merged += 1

    for track_id in list(replacement_map):
        replacement_map[track_id] = find_survivor(replacement_map[track_id], replacement_map)

    return num_merged, replacement_map


def remove_replaced_tracks(
    track_set: TrackSet, replacement_map: ReplacementMap
) -> TrackSet:
    """
    Apply a replacement map to a track set.

    Args:
        track_set: Track set the merged tracks were taken from
        replacement_map: Map produced by ``merge_tracks``

    Returns:
        New track set without the replaced tracks, with surviving tracks in
        their merged form and in their original order
    """
    if not replacement_map:
        return track_set

    survivors = {track.id: track for track in replacement_map.values()}
    return TrackSet(
        survivors.get(track.id, track)
        for track in track_set.tracks()
        if track.id not in replacement_map
    )
