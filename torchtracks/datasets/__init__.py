"""
Datasets of image sequences for the torchtracks library.
"""

from .image_sequence import (
    FrameDataset,
    ImageSequenceDataset,
    VideoFrameDataset,
    image_to_tensor,
    mask_to_tensor,
)

__all__ = [
    "FrameDataset",
    "ImageSequenceDataset",
    "VideoFrameDataset",
    "image_to_tensor",
    "mask_to_tensor",
]
