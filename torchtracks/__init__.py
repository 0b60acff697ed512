"""
PyTorch Feature Tracking Library

A PyTorch-based library for tracking image features across a sequence of
frames. Tracks are extended one frame at a time by detecting features,
matching them against a reference frame and either extending matched tracks,
starting new ones or stitching fragments that observe the same point.

Major Components:
- Frontend: Feature detection, description and matching, track storage,
  track extension and loop closing
- Algorithms: Registry of named sub-algorithm implementations
- Datasets: Loaders for image sequences and video files
- Visualization: Track drawing and statistics plots
"""
# Import frontend/feature_extraction components
from torchtracks.frontend.feature_extraction import (
    BaseDescriptorExtractor,
    BaseFeatureDetector,
    BaseFeatureMatcher,
    BriefDescriptorExtractor,
    FeatureMatcher,
    HarrisFeatureDetector,
    KeyPoint,
    Match,
    MatchingMethod,
    PatchDescriptorExtractor,
)

# Import frontend/tracking components
from torchtracks.frontend.tracking import (
    BaseLoopCloser,
    BaseTracker,
    CoreFeatureTracker,
    ExhaustiveLoopCloser,
    Track,
    TrackSet,
    TrackState,
    merge_tracks,
)

from torchtracks.config import create_tracker, default_config, load_config
from torchtracks.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    TorchTracksError,
)
from torchtracks.pipeline import summarize_tracks, track_sequence

# Version information
from torchtracks.version import __version__

# Define the public API
__all__ = [
    # Top-level modules
    "frontend",
    "algorithms",
    "config",
    "datasets",
    "pipeline",
    "visualization",
    # Feature extraction
    "KeyPoint",
    "Match",
    "MatchingMethod",
    "BaseFeatureDetector",
    "BaseDescriptorExtractor",
    "BaseFeatureMatcher",
    "HarrisFeatureDetector",
    "BriefDescriptorExtractor",
    "PatchDescriptorExtractor",
    "FeatureMatcher",
    # Tracking
    "Track",
    "TrackSet",
    "TrackState",
    "BaseTracker",
    "CoreFeatureTracker",
    "BaseLoopCloser",
    "ExhaustiveLoopCloser",
    "merge_tracks",
    # Configuration and errors
    "create_tracker",
    "default_config",
    "load_config",
    "TorchTracksError",
    "ConfigurationError",
    "DimensionMismatchError",
    # Drivers
    "track_sequence",
    "summarize_tracks",
    "__version__",
]
