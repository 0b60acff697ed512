"""
Exception types raised by the torchtracks library.
"""


class TorchTracksError(Exception):
    """Base class for all torchtracks errors."""


class ConfigurationError(TorchTracksError, RuntimeError):
    """Raised when an algorithm is used without its required sub-algorithms,
    or when a configuration names an algorithm that does not exist."""

    def __init__(self, algorithm: str, message: str):
        """
        Initialize the error.

        Args:
            algorithm: Name of the algorithm that is misconfigured
            message: Description of the problem
        """
        super().__init__(f"{algorithm}: {message}")
        self.algorithm = algorithm


class DimensionMismatchError(TorchTracksError, ValueError):
    """Raised when a mask does not have the same shape as its image."""

    def __init__(
        self,
        message: str,
        image_width: int,
        image_height: int,
        mask_width: int,
        mask_height: int,
    ):
        super().__init__(
            f"{message} (image: {image_width}x{image_height}, "
            f"mask: {mask_width}x{mask_height})"
        )
        self.image_width = image_width
        self.image_height = image_height
        self.mask_width = mask_width
        self.mask_height = mask_height
