import math
from typing import Dict, List, Optional

import numpy as np
import torch
import torch.nn.functional as F

from ...algorithms import DESCRIPTOR_EXTRACTOR, register_algorithm
from .base import BaseDescriptorExtractor, KeyPoint, preprocess_image


def _keypoint_coordinates(
    keypoints: List[KeyPoint], device: torch.device
) -> torch.Tensor:
    """Stack keypoints into a (N, 3) tensor of (x, y, angle)."""
    return torch.tensor(
        [(kp.x, kp.y, kp.angle) for kp in keypoints],
        dtype=torch.float32,
        device=device,
    )


@register_algorithm(DESCRIPTOR_EXTRACTOR, "brief")
class BriefDescriptorExtractor(BaseDescriptorExtractor):
    """Binary BRIEF descriptor with optional steering by keypoint orientation.

    Each bit compares the intensity of two pixels drawn from a fixed random
    pattern inside a square patch around the keypoint. Bits are packed into
    bytes so descriptors are uint8 tensors of shape (N, n_bits // 8)."""

    def __init__(self, config: Dict = None):
        """
        Initialize BRIEF extractor.

        Args:
            config: Configuration dictionary with the following keys:
                - n_bits: Number of binary tests (multiple of 8)
                - patch_size: Size of the sampling patch (odd)
                - seed: Seed of the sampling pattern
                - use_orientation: Rotate the pattern by the keypoint angle
        """
        super().__init__(config)
        self.n_bits = self.config.get("n_bits", 256)
        self.patch_size = self.config.get("patch_size", 31)
        self.seed = self.config.get("seed", 1234)
        self.use_orientation = self.config.get("use_orientation", True)
        self.half_patch_size = self.patch_size // 2

        self.sampling_patterns = self._generate_sampling_patterns()

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        n_bits = int(config.get("n_bits", 256))
        patch_size = int(config.get("patch_size", 31))
        return n_bits > 0 and n_bits % 8 == 0 and patch_size > 1 and patch_size % 2 == 1

    def get_configuration(self) -> Dict:
        return {
            "n_bits": self.n_bits,
            "patch_size": self.patch_size,
            "seed": self.seed,
            "use_orientation": self.use_orientation,
        }

    @property
    def descriptor_size(self) -> int:
        return self.n_bits // 8

    def extract(
        self,
        image: torch.Tensor,
        features: List[KeyPoint],
        mask: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """
        Compute BRIEF descriptors.

        Args:
            image: Image tensor (C, H, W) or (H, W)
            features: List of KeyPoint objects
            mask: Unused

        Returns:
            Tensor of descriptors (len(features), n_bits // 8) dtype=torch.uint8
        """
        if not features:
            return torch.zeros(
                (0, self.descriptor_size), dtype=torch.uint8, device=image.device
            )

        img = preprocess_image(image)
        device = img.device
        hp = self.half_patch_size

        padded = F.pad(img, (hp, hp, hp, hp), mode="replicate")
        padded_h, padded_w = padded.shape[2:]

        sp = self.sampling_patterns.to(device)[None, :, :]  # (1, n_bits, 4)
        kp_data = _keypoint_coordinates(features, device)
        kp_x = kp_data[:, 0:1]
        kp_y = kp_data[:, 1:2]

        if self.use_orientation:
            angles = kp_data[:, 2:3]
            angles_rad = torch.where(
                angles >= 0, angles * (math.pi / 180.0), torch.zeros_like(angles)
            )
        else:
            angles_rad = torch.zeros_like(kp_x)
        cos_t = torch.cos(angles_rad)
        sin_t = torch.sin(angles_rad)

        # Rotate point pairs: (x', y') = (x*cos - y*sin, x*sin + y*cos)
        r_x1 = cos_t * sp[:, :, 0] - sin_t * sp[:, :, 1]
        r_y1 = sin_t * sp[:, :, 0] + cos_t * sp[:, :, 1]
        r_x2 = cos_t * sp[:, :, 2] - sin_t * sp[:, :, 3]
        r_y2 = sin_t * sp[:, :, 2] + cos_t * sp[:, :, 3]

        px1 = torch.clamp(torch.round(kp_x + r_x1 + hp), 0, padded_w - 1).long()
        py1 = torch.clamp(torch.round(kp_y + r_y1 + hp), 0, padded_h - 1).long()
        px2 = torch.clamp(torch.round(kp_x + r_x2 + hp), 0, padded_w - 1).long()
        py2 = torch.clamp(torch.round(kp_y + r_y2 + hp), 0, padded_h - 1).long()

        bits = padded[0, 0, py1, px1] < padded[0, 0, py2, px2]  # (N, n_bits)

        # Pack bits into bytes
        bits = bits.view(len(features), self.descriptor_size, 8)
        powers = 2 ** torch.arange(8, dtype=torch.uint8, device=device)
        return torch.sum(bits.byte() * powers, dim=2, dtype=torch.uint8)

    def _generate_sampling_patterns(self) -> torch.Tensor:
        """
        Generate the point pairs compared by the descriptor.

        Returns:
            Tensor of shape (n_bits, 4) containing (x1, y1, x2, y2) offsets
        """
        rng = np.random.default_rng(self.seed)
        hp = self.half_patch_size

        # Isotropic Gaussian sampling clipped to the patch
        points = rng.normal(0.0, self.patch_size / 5.0, size=(self.n_bits, 4))
        points = np.clip(np.round(points), -hp, hp)

        return torch.tensor(points, dtype=torch.float32)


@register_algorithm(DESCRIPTOR_EXTRACTOR, "patch")
class PatchDescriptorExtractor(BaseDescriptorExtractor):
    """Normalized intensity patch descriptor.

    The patch around each keypoint is mean-subtracted and L2 normalized, so
    cosine distance between descriptors is a normalized cross-correlation."""

    def __init__(self, config: Dict = None):
        super().__init__(config)
        self.patch_size = self.config.get("patch_size", 9)

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        patch_size = int(config.get("patch_size", 9))
        return patch_size > 0 and patch_size % 2 == 1

    def get_configuration(self) -> Dict:
        return {"patch_size": self.patch_size}

    @property
    def descriptor_size(self) -> int:
        return self.patch_size * self.patch_size

    def extract(
        self,
        image: torch.Tensor,
        features: List[KeyPoint],
        mask: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        if not features:
            return torch.zeros(
                (0, self.descriptor_size), dtype=torch.float32, device=image.device
            )

        img = preprocess_image(image)
        device = img.device
        hp = self.patch_size // 2
        padded = F.pad(img, (hp, hp, hp, hp), mode="replicate")

        iy, ix = torch.meshgrid(
            torch.arange(-hp, hp + 1, device=device),
            torch.arange(-hp, hp + 1, device=device),
            indexing="ij",
        )

        kp_data = _keypoint_coordinates(features, device)
        cx = torch.round(kp_data[:, 0]).long() + hp
        cy = torch.round(kp_data[:, 1]).long() + hp
        cx = torch.clamp(cx, hp, padded.shape[3] - hp - 1)
        cy = torch.clamp(cy, hp, padded.shape[2] - hp - 1)

        patches = padded[0, 0, cy[:, None, None] + iy, cx[:, None, None] + ix]
        patches = patches.reshape(len(features), -1)
        patches = patches - patches.mean(dim=1, keepdim=True)

        return F.normalize(patches, p=2, dim=1)
