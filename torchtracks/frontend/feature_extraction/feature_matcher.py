import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Union

import numpy as np
import torch
import torch.nn.functional as F
from scipy.optimize import linear_sum_assignment

from ...algorithms import FEATURE_MATCHER, register_algorithm
from .base import KeyPoint


class MatchingMethod(Enum):
    """Enum for different matching methods."""

    NEAREST_NEIGHBOR = "nearest_neighbor"
    RATIO_TEST = "ratio_test"
    MUTUAL_NEAREST = "mutual_nearest"
    ONE_TO_ONE = "one_to_one"


class Match:
    """Represents a match between two keypoints."""

    def __init__(self, query_idx: int, train_idx: int, distance: float = 0.0):
        """
        Initialize a match.

        Args:
            query_idx: Index of the observation in the first (query) set
            train_idx: Index of the observation in the second (train) set
            distance: Distance between the descriptors
        """
        self.query_idx = query_idx
        self.train_idx = train_idx
        self.distance = distance

    def __iter__(self):
        yield self.query_idx
        yield self.train_idx

    def __eq__(self, other) -> bool:
        if not isinstance(other, Match):
            return NotImplemented
        return (self.query_idx, self.train_idx) == (other.query_idx, other.train_idx)

    def __hash__(self) -> int:
        return hash((self.query_idx, self.train_idx))

    def __repr__(self) -> str:
        return f"Match(query_idx={self.query_idx}, train_idx={self.train_idx}, distance={self.distance:.4f})"


class BaseFeatureMatcher(ABC):
    """Base class for feature matchers.

    A matcher returns an ordered list of matches, an empty list when there is
    nothing to match, or None when matching failed."""

    def __init__(self, config: Dict = None):
        self.config = config if config is not None else {}
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        """Whether a configuration dictionary is valid for this matcher."""
        return True

    def get_configuration(self) -> Dict:
        """Get the configuration of this matcher."""
        return dict(self.config)

    @abstractmethod
    def match(
        self,
        features_a: List[KeyPoint],
        descriptors_a: torch.Tensor,
        features_b: List[KeyPoint],
        descriptors_b: torch.Tensor,
    ) -> Optional[List[Match]]:
        """
        Match observations of set A to observations of set B.

        Args:
            features_a: Features of the first set
            descriptors_a: Descriptors of the first set (N, D)
            features_b: Features of the second set
            descriptors_b: Descriptors of the second set (M, D)

        Returns:
            List of Match objects (query_idx into A, train_idx into B),
            or None if matching failed
        """
        pass


# Number of set bits for every byte value
_POPCOUNT_TABLE = torch.tensor([bin(i).count("1") for i in range(256)], dtype=torch.float32)


@register_algorithm(FEATURE_MATCHER, "brute_force")
class FeatureMatcher(BaseFeatureMatcher):
    """Brute force descriptor matcher.

    Uses Hamming distance for binary (uint8) descriptors and cosine distance
    for floating point descriptors."""

    def __init__(self, config: Dict = None):
        """
        Initialize feature matcher.

        Args:
            config: Configuration dictionary with the following keys:
                - method: Matching method (see MatchingMethod)
                - ratio_threshold: Threshold for the ratio test
                - cross_check: Keep only matches that agree in both directions
                  (nearest neighbor and ratio test methods)
                - max_distance: Maximum allowable distance between matched descriptors
        """
        super().__init__(config)
        self.method = self._parse_method(self.config.get("method", MatchingMethod.RATIO_TEST))
        self.ratio_threshold = self.config.get("ratio_threshold", 0.8)
        self.cross_check = self.config.get("cross_check", False)
        self.max_distance = float(self.config.get("max_distance", float("inf")))

    @staticmethod
    def _parse_method(method: Union[str, MatchingMethod]) -> MatchingMethod:
        if isinstance(method, MatchingMethod):
            return method
        return MatchingMethod(str(method).lower())

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        try:
            cls._parse_method(config.get("method", MatchingMethod.RATIO_TEST))
        except ValueError:
            return False
        ratio = float(config.get("ratio_threshold", 0.8))
        return 0.0 < ratio <= 1.0

    def get_configuration(self) -> Dict:
        return {
            "method": self.method.value,
            "ratio_threshold": self.ratio_threshold,
            "cross_check": self.cross_check,
            "max_distance": self.max_distance,
        }

    def match(
        self,
        features_a: List[KeyPoint],
        descriptors_a: torch.Tensor,
        features_b: List[KeyPoint],
        descriptors_b: torch.Tensor,
    ) -> Optional[List[Match]]:
        if descriptors_a is None or descriptors_b is None:
            self.logger.warning("Cannot match without descriptors")
            return None

        if len(features_a) != descriptors_a.shape[0] or len(features_b) != descriptors_b.shape[0]:
            self.logger.warning(
                f"Feature and descriptor counts differ: "
                f"{len(features_a)}/{descriptors_a.shape[0]} and "
                f"{len(features_b)}/{descriptors_b.shape[0]}"
            )
            return None

        if descriptors_a.shape[0] == 0 or descriptors_b.shape[0] == 0:
            return []

        if descriptors_a.dim() != 2 or descriptors_a.shape[1:] != descriptors_b.shape[1:]:
            self.logger.warning(
                f"Incompatible descriptor shapes {tuple(descriptors_a.shape)} "
                f"and {tuple(descriptors_b.shape)}"
            )
            return None

        binary_a = descriptors_a.dtype == torch.uint8
        binary_b = descriptors_b.dtype == torch.uint8
        if binary_a != binary_b:
            self.logger.warning(
                f"Cannot match {descriptors_a.dtype} descriptors against {descriptors_b.dtype}"
            )
            return None

        distances = self.compute_distances(descriptors_a, descriptors_b)

        if self.method == MatchingMethod.ONE_TO_ONE:
            matches = self._assignment_match(distances)
        elif self.method == MatchingMethod.MUTUAL_NEAREST:
            matches = self._mutual_match(distances)
        else:
            matches = self._nearest_match(distances)
            if self.cross_check:
                reverse = torch.argmin(distances, dim=0)
                matches = [m for m in matches if reverse[m.train_idx].item() == m.query_idx]

        return [m for m in matches if m.distance <= self.max_distance]

    def compute_distances(
        self, descriptors_a: torch.Tensor, descriptors_b: torch.Tensor
    ) -> torch.Tensor:
        """
        Compute the full distance matrix between two descriptor sets.

        Args:
            descriptors_a: Descriptors (N, D)
            descriptors_b: Descriptors (M, D)

        Returns:
            Distance matrix (N, M)
        """
        if descriptors_a.dtype == torch.uint8:
            table = _POPCOUNT_TABLE.to(descriptors_a.device)
            xor = torch.bitwise_xor(descriptors_a[:, None, :], descriptors_b[None, :, :])
            return table[xor.long()].sum(dim=2)

        norm_a = F.normalize(descriptors_a.float(), p=2, dim=1)
        norm_b = F.normalize(descriptors_b.float(), p=2, dim=1)
        return 1.0 - torch.mm(norm_a, norm_b.t())

    def _nearest_match(self, distances: torch.Tensor) -> List[Match]:
        k = min(2, distances.shape[1])
        top_distances, top_indices = torch.topk(distances, k, dim=1, largest=False)

        matches = []
        for i in range(distances.shape[0]):
            best = top_distances[i, 0].item()
            if self.method == MatchingMethod.RATIO_TEST and k == 2:
                if not best < self.ratio_threshold * top_distances[i, 1].item():
                    continue
            matches.append(Match(i, top_indices[i, 0].item(), best))
        return matches

    def _mutual_match(self, distances: torch.Tensor) -> List[Match]:
        forward = torch.argmin(distances, dim=1)
        reverse = torch.argmin(distances, dim=0)

        matches = []
        for i in range(distances.shape[0]):
            j = forward[i].item()
            if reverse[j].item() == i:
                matches.append(Match(i, j, distances[i, j].item()))
        return matches

    def _assignment_match(self, distances: torch.Tensor) -> List[Match]:
        cost = distances.detach().cpu().numpy().astype(np.float64)
        rows, cols = linear_sum_assignment(cost)
        return [Match(int(r), int(c), float(cost[r, c])) for r, c in zip(rows, cols)]
