import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import cv2
import numpy as np
import torch
from torch.utils.data import Dataset

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".pgm", ".ppm")


def image_to_tensor(image: np.ndarray) -> torch.Tensor:
    """
    Convert an OpenCV image to a float tensor.

    Args:
        image: Grayscale (H, W) or BGR (H, W, 3) image

    Returns:
        Tensor with shape (C, H, W), RGB channel order, values in [0, 255]
    """
    if image.ndim == 2:
        return torch.from_numpy(image.astype(np.float32)).unsqueeze(0)
    if image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
    elif image.ndim == 3:
        image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    else:
        raise ValueError(f"Unsupported image shape {image.shape}")
    return torch.from_numpy(image.astype(np.float32)).permute(2, 0, 1).contiguous()


def mask_to_tensor(mask: np.ndarray) -> torch.Tensor:
    """Convert an OpenCV mask image to a (H, W) uint8 tensor of 0/1 values."""
    if mask.ndim == 3:
        mask = cv2.cvtColor(mask, cv2.COLOR_BGR2GRAY)
    return torch.from_numpy((mask > 0).astype(np.uint8))


class FrameDataset(Dataset, ABC):
    """
    Base dataset of numbered frames.

    Samples are dictionaries with the keys "frame_number", "image" and, when
    a mask is available, "mask".
    """

    def __init__(
        self,
        start_frame: int = 0,
        grayscale: bool = False,
        transforms: Optional[List[Callable]] = None,
        cache_size: int = 100,
    ):
        """
        Initialize the dataset.

        Args:
            start_frame: Frame number of the first sample
            grayscale: Whether to load images as single channel
            transforms: Callables applied in order to each image tensor
            cache_size: Maximum number of samples to keep in memory
        """
        self.start_frame = start_frame
        self.grayscale = grayscale
        self.transforms = transforms if transforms is not None else []
        self.cache_size = cache_size
        self.data_cache: Dict[int, Dict[str, Any]] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def __len__(self) -> int:
        pass

    @abstractmethod
    def _load_image(self, idx: int) -> np.ndarray:
        """Load the OpenCV image of a sample."""
        pass

    def _load_mask(self, idx: int) -> Optional[np.ndarray]:
        """Load the OpenCV mask of a sample, if any."""
        return None

    def apply_transforms(self, image: torch.Tensor) -> torch.Tensor:
        for transform in self.transforms:
            image = transform(image)
        return image

    def __getitem__(self, idx: int) -> Dict[str, Any]:
        if idx < 0:
            idx += len(self)
        if idx < 0 or idx >= len(self):
            raise IndexError(f"Frame index {idx} out of range for {len(self)} frames")

        if idx in self.data_cache:
            return self.data_cache[idx]

        sample = {
            "frame_number": self.start_frame + idx,
            "image": self.apply_transforms(image_to_tensor(self._load_image(idx))),
        }
        mask = self._load_mask(idx)
        if mask is not None:
            sample["mask"] = mask_to_tensor(mask)

        if len(self.data_cache) >= self.cache_size > 0:
            # Remove oldest item from cache
            self.data_cache.pop(next(iter(self.data_cache)))
        if self.cache_size > 0:
            self.data_cache[idx] = sample

        return sample


class ImageSequenceDataset(FrameDataset):
    """
    Ordered image files in a directory.

    Frames are sorted by file name. When a mask directory is given, the mask
    of a frame is the file in that directory with the same stem.
    """

    def __init__(
        self,
        image_dir: Union[str, Path],
        mask_dir: Optional[Union[str, Path]] = None,
        pattern: str = "*",
        **kwargs,
    ):
        """
        Initialize the dataset.

        Args:
            image_dir: Directory holding the images
            mask_dir: Directory holding masks (optional)
            pattern: Glob pattern selecting image files
            **kwargs: Arguments of FrameDataset
        """
        super().__init__(**kwargs)
        self.image_dir = Path(image_dir)
        self.mask_dir = Path(mask_dir) if mask_dir is not None else None

        if not self.image_dir.is_dir():
            raise FileNotFoundError(f"Image directory not found: {self.image_dir}")

        self.image_files = sorted(
            p for p in self.image_dir.glob(pattern) if p.suffix.lower() in IMAGE_EXTENSIONS
        )

        self.mask_files: Dict[str, Path] = {}
        if self.mask_dir is not None:
            for p in self.mask_dir.iterdir():
                if p.suffix.lower() in IMAGE_EXTENSIONS:
                    self.mask_files[p.stem] = p

        self.logger.info(f"Image sequence: {self.image_dir} ({len(self.image_files)} frames)")
        if self.mask_dir is not None:
            self.logger.info(f"Masks: {self.mask_dir} ({len(self.mask_files)} files)")

    def __len__(self) -> int:
        return len(self.image_files)

    def _load_image(self, idx: int) -> np.ndarray:
        flags = cv2.IMREAD_GRAYSCALE if self.grayscale else cv2.IMREAD_COLOR
        path = self.image_files[idx]
        image = cv2.imread(str(path), flags)
        if image is None:
            raise IOError(f"Could not read image file: {path}")
        return image

    def _load_mask(self, idx: int) -> Optional[np.ndarray]:
        path = self.mask_files.get(self.image_files[idx].stem)
        if path is None:
            return None
        mask = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if mask is None:
            raise IOError(f"Could not read mask file: {path}")
        return mask


class VideoFrameDataset(FrameDataset):
    """Frames of a video file decoded with OpenCV."""

    def __init__(self, video_path: Union[str, Path], **kwargs):
        """
        Initialize the dataset.

        Args:
            video_path: Path to the video file
            **kwargs: Arguments of FrameDataset
        """
        super().__init__(**kwargs)
        self.video_path = Path(video_path)

        self.capture = cv2.VideoCapture(str(self.video_path))
        if not self.capture.isOpened():
            raise IOError(f"Could not open video file: {self.video_path}")

        self.num_frames = int(self.capture.get(cv2.CAP_PROP_FRAME_COUNT))
        self._next_idx = 0

        self.logger.info(f"Video: {self.video_path} ({self.num_frames} frames)")

    def __len__(self) -> int:
        return self.num_frames

    def _load_image(self, idx: int) -> np.ndarray:
        # Seek only when not reading sequentially
        if idx != self._next_idx:
            self.capture.set(cv2.CAP_PROP_POS_FRAMES, idx)

        ret, frame = self.capture.read()
        if not ret:
            raise IOError(f"Could not read frame {idx} from video file: {self.video_path}")
        self._next_idx = idx + 1

        if self.grayscale:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        return frame

    def close(self):
        """Release the video capture."""
        self.capture.release()
