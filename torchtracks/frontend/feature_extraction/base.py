from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import torch
import torch.nn.functional as F


class KeyPoint:
    """Class representing a keypoint."""

    def __init__(
        self,
        x: float,
        y: float,
        response: float = 0.0,
        size: float = 1.0,
        angle: float = -1.0,
        octave: int = 0,
    ):
        self.x = x
        self.y = y
        self.response = response  # Strength of the keypoint
        self.size = size  # Diameter of the meaningful keypoint neighborhood
        self.angle = angle  # Orientation in degrees (-1 if not applicable)
        self.octave = octave

    def pt(self) -> Tuple[float, float]:
        """Get point coordinates."""
        return (self.x, self.y)

    def __repr__(self) -> str:
        return f"KeyPoint(x={self.x:.2f}, y={self.y:.2f}, response={self.response:.4f})"


def image_size(image: torch.Tensor) -> Tuple[int, int]:
    """
    Get the (width, height) of an image or mask tensor.

    Args:
        image: Tensor with shape (H, W), (C, H, W) or (1, C, H, W)

    Returns:
        Tuple of (width, height)
    """
    if image.dim() < 2:
        raise ValueError(f"Unsupported image format with shape {tuple(image.shape)}")
    height, width = image.shape[-2:]
    return int(width), int(height)


def is_empty_mask(mask: Optional[torch.Tensor]) -> bool:
    """Whether a mask is absent or holds no pixels."""
    return mask is None or mask.numel() == 0


def preprocess_image(image: torch.Tensor) -> torch.Tensor:
    """
    Convert an image to a single-channel float tensor in [0, 1].

    Args:
        image: Tensor with shape (C, H, W), (H, W) or (1, C, H, W)

    Returns:
        Tensor with shape (1, 1, H, W)
    """
    if image.dim() == 4 and image.shape[0] == 1:
        image = image[0]

    if image.dim() == 3 and image.shape[0] > 1:
        # Simple rgb to grayscale - average the channels
        gray = image.float().mean(dim=0, keepdim=True)
    elif image.dim() == 3 and image.shape[0] == 1:
        gray = image.float()
    elif image.dim() == 2:
        gray = image.float().unsqueeze(0)
    else:
        raise ValueError(f"Unsupported image format with shape {tuple(image.shape)}")

    if gray.numel() > 0 and gray.max() > 1.0 + 1e-6:
        gray = gray / 255.0

    return gray.unsqueeze(0)


def mask_to_bool(mask: torch.Tensor) -> torch.Tensor:
    """
    Convert a mask to a boolean (H, W) tensor where True marks usable pixels.

    Args:
        mask: Tensor with shape (H, W), (1, H, W) or (1, 1, H, W)

    Returns:
        Boolean tensor with shape (H, W)
    """
    while mask.dim() > 2:
        mask = mask[0]
    return mask != 0


class BaseFeatureDetector(ABC):
    """Base class for feature detection.

    Detectors are configured once with a configuration dictionary and are
    then used read-only across frames."""

    def __init__(self, config: Dict = None):
        self.config = config if config is not None else {}
        self.max_features = self.config.get("max_features", 1000)

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        """Whether a configuration dictionary is valid for this detector."""
        return int(config.get("max_features", 1)) > 0

    def get_configuration(self) -> Dict:
        """Get the configuration of this detector."""
        return dict(self.config)

    @abstractmethod
    def detect(
        self, image: torch.Tensor, mask: Optional[torch.Tensor] = None
    ) -> List[KeyPoint]:
        """
        Detect features in an image.

        Args:
            image: PyTorch tensor with shape (C, H, W) or (H, W)
            mask: Optional mask; features are only detected where it is non-zero

        Returns:
            List of KeyPoint objects
        """
        pass

    def _compute_image_gradients(
        self, image: torch.Tensor
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Compute image gradients using Sobel operators.

        Args:
            image: Single-channel image tensor (1, 1, H, W)

        Returns:
            Tuple of (dx, dy) gradient tensors
        """
        device = image.device

        sobel_x = torch.tensor(
            [[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=torch.float32, device=device
        ).view(1, 1, 3, 3)
        sobel_y = torch.tensor(
            [[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=torch.float32, device=device
        ).view(1, 1, 3, 3)

        padded = F.pad(image, (1, 1, 1, 1), mode="replicate")

        dx = F.conv2d(padded, sobel_x)
        dy = F.conv2d(padded, sobel_y)

        return dx, dy

    def _gaussian_kernel_2d(
        self, kernel_size: int, sigma: float, device: torch.device
    ) -> torch.Tensor:
        """Create a normalized 2D Gaussian kernel."""
        if kernel_size % 2 == 0:
            raise ValueError("Kernel size must be odd")

        coords = torch.arange(kernel_size, device=device) - (kernel_size - 1) / 2
        x = coords.repeat(kernel_size, 1)
        y = x.t()

        kernel = torch.exp(-(x.pow(2) + y.pow(2)) / (2 * sigma * sigma))
        kernel = kernel / kernel.sum()

        return kernel

    def _non_maximum_suppression(
        self,
        response_map: torch.Tensor,
        max_points: int,
        window_size: int = 3,
        threshold_ratio: float = 0.01,
    ) -> List[KeyPoint]:
        """
        Perform non-maximum suppression to find local maxima in the response map.

        Args:
            response_map: Tensor containing corner/feature response values (H, W)
            max_points: Maximum number of points to return
            window_size: Size of window for non-maximum suppression
            threshold_ratio: Fraction of the strongest response below which
                maxima are discarded

        Returns:
            List of KeyPoint objects sorted by decreasing response
        """
        if response_map.numel() == 0:
            return []

        pad = window_size // 2
        max_pooled = F.max_pool2d(
            response_map[None, None],
            kernel_size=window_size,
            stride=1,
            padding=pad,
        )[0, 0]

        is_max = response_map == max_pooled

        max_response = torch.max(response_map)
        if max_response <= 0:
            return []
        is_max = torch.logical_and(is_max, response_map > max_response * threshold_ratio)

        y_coords, x_coords = torch.nonzero(is_max, as_tuple=True)
        if len(y_coords) == 0:
            return []

        responses = response_map[y_coords, x_coords]
        order = torch.argsort(responses, descending=True)[:max_points]

        keypoints = []
        for idx in order.tolist():
            keypoints.append(
                KeyPoint(
                    x=float(x_coords[idx].item()),
                    y=float(y_coords[idx].item()),
                    response=float(responses[idx].item()),
                    size=float(window_size),
                )
            )

        return keypoints


class BaseDescriptorExtractor(ABC):
    """Base class for descriptor extraction.

    The returned descriptor tensor is index aligned with the feature list:
    row ``i`` describes ``features[i]``."""

    def __init__(self, config: Dict = None):
        self.config = config if config is not None else {}

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        """Whether a configuration dictionary is valid for this extractor."""
        return True

    def get_configuration(self) -> Dict:
        """Get the configuration of this extractor."""
        return dict(self.config)

    @property
    @abstractmethod
    def descriptor_size(self) -> int:
        """Number of columns in the descriptor tensor."""
        pass

    @abstractmethod
    def extract(
        self,
        image: torch.Tensor,
        features: List[KeyPoint],
        mask: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """
        Compute descriptors for features.

        Args:
            image: PyTorch tensor with shape (C, H, W) or (H, W)
            features: List of KeyPoint objects
            mask: Optional mask (unused by most extractors)

        Returns:
            Tensor of descriptors with shape (len(features), descriptor_size)
        """
        pass
