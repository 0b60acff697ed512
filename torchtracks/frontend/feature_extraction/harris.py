import math
from typing import Dict, List, Optional

import torch
import torch.nn.functional as F

from ...algorithms import FEATURE_DETECTOR, register_algorithm
from .base import (
    BaseFeatureDetector,
    KeyPoint,
    image_size,
    is_empty_mask,
    mask_to_bool,
    preprocess_image,
)


@register_algorithm(FEATURE_DETECTOR, "harris")
class HarrisFeatureDetector(BaseFeatureDetector):
    """Harris corner detector implemented with PyTorch convolutions.

    Corners are local maxima of the Harris response computed from a Gaussian
    weighted structure tensor. Each keypoint is given the orientation of the
    smoothed image gradient at its location."""

    def __init__(self, config: Dict = None):
        """
        Initialize Harris detector.

        Args:
            config: Configuration dictionary with the following keys:
                - max_features: Maximum number of features to detect
                - k: Harris sensitivity parameter
                - window_size: Size of the Gaussian window (odd)
                - sigma: Standard deviation of the Gaussian window
                - nms_window: Size of the non-maximum suppression window (odd)
                - threshold_ratio: Responses below this fraction of the
                  strongest response are discarded
                - border: Pixels near the image border where no corner is kept
        """
        super().__init__(config)
        self.k = self.config.get("k", 0.04)
        self.window_size = self.config.get("window_size", 5)
        self.sigma = self.config.get("sigma", 1.0)
        self.nms_window = self.config.get("nms_window", 5)
        self.threshold_ratio = self.config.get("threshold_ratio", 0.01)
        self.border = self.config.get("border", 8)

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        if not super().check_configuration(config):
            return False
        window_size = int(config.get("window_size", 5))
        nms_window = int(config.get("nms_window", 5))
        if window_size % 2 == 0 or nms_window % 2 == 0:
            return False
        return float(config.get("k", 0.04)) > 0 and float(config.get("sigma", 1.0)) > 0

    def get_configuration(self) -> Dict:
        return {
            "max_features": self.max_features,
            "k": self.k,
            "window_size": self.window_size,
            "sigma": self.sigma,
            "nms_window": self.nms_window,
            "threshold_ratio": self.threshold_ratio,
            "border": self.border,
        }

    def detect(
        self, image: torch.Tensor, mask: Optional[torch.Tensor] = None
    ) -> List[KeyPoint]:
        """
        Detect Harris corners.

        Args:
            image: Image tensor (C, H, W) or (H, W)
            mask: Optional mask, corners are only kept where it is non-zero

        Returns:
            List of KeyPoint objects sorted by decreasing response
        """
        img = preprocess_image(image)
        device = img.device
        height, width = img.shape[2:]

        if height == 0 or width == 0:
            return []

        dx, dy = self._compute_image_gradients(img)

        # Gaussian weighted structure tensor
        kernel = self._gaussian_kernel_2d(self.window_size, self.sigma, device)
        kernel = kernel.view(1, 1, self.window_size, self.window_size)
        pad = self.window_size // 2

        def smooth(t: torch.Tensor) -> torch.Tensor:
            return F.conv2d(F.pad(t, (pad, pad, pad, pad), mode="replicate"), kernel)

        sxx = smooth(dx * dx)[0, 0]
        syy = smooth(dy * dy)[0, 0]
        sxy = smooth(dx * dy)[0, 0]

        response = sxx * syy - sxy * sxy - self.k * (sxx + syy) ** 2

        valid = torch.zeros((height, width), dtype=torch.bool, device=device)
        b = self.border
        if height > 2 * b and width > 2 * b:
            valid[b : height - b, b : width - b] = True

        if not is_empty_mask(mask):
            if image_size(mask) != (width, height):
                raise ValueError(
                    f"Mask shape {tuple(mask.shape)} does not match image shape {tuple(image.shape)}"
                )
            valid &= mask_to_bool(mask).to(device)

        response = torch.where(valid, response, torch.zeros_like(response))

        keypoints = self._non_maximum_suppression(
            response,
            self.max_features,
            window_size=self.nms_window,
            threshold_ratio=self.threshold_ratio,
        )

        # Orientation from the smoothed gradient
        gx = smooth(dx)[0, 0]
        gy = smooth(dy)[0, 0]
        for kp in keypoints:
            xi, yi = int(kp.x), int(kp.y)
            angle = math.degrees(math.atan2(gy[yi, xi].item(), gx[yi, xi].item()))
            kp.angle = angle + 360.0 if angle < 0 else angle

        return keypoints
