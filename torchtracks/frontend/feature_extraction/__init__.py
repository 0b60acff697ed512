"""
Feature extraction module for the torchtracks library.

This module contains the detector, descriptor extractor and matcher interfaces
consumed by the track extension engine, together with simple PyTorch reference
implementations of each.
"""

from .base import (
    BaseDescriptorExtractor,
    BaseFeatureDetector,
    KeyPoint,
    image_size,
    is_empty_mask,
    mask_to_bool,
    preprocess_image,
)
from .descriptors import BriefDescriptorExtractor, PatchDescriptorExtractor
from .feature_matcher import BaseFeatureMatcher, FeatureMatcher, Match, MatchingMethod
from .harris import HarrisFeatureDetector

__all__ = [
    "KeyPoint",
    "BaseFeatureDetector",
    "BaseDescriptorExtractor",
    "BaseFeatureMatcher",
    "HarrisFeatureDetector",
    "BriefDescriptorExtractor",
    "PatchDescriptorExtractor",
    "FeatureMatcher",
    "Match",
    "MatchingMethod",
    "image_size",
    "is_empty_mask",
    "mask_to_bool",
    "preprocess_image",
]
