"""
Registry of named algorithm implementations.

Sub-algorithms (feature detectors, descriptor extractors, feature matchers and
loop closers) are selected by name from a nested configuration dictionary:

    {
        "feature_detector": {
            "type": "harris",
            "harris": {"max_features": 500},
        },
    }

The block under the selected type name is handed to the implementation's
constructor as its own configuration dictionary.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Type

from .exceptions import ConfigurationError

FEATURE_DETECTOR = "feature_detector"
DESCRIPTOR_EXTRACTOR = "descriptor_extractor"
FEATURE_MATCHER = "feature_matcher"
LOOP_CLOSER = "loop_closer"

ALGORITHM_KINDS = (FEATURE_DETECTOR, DESCRIPTOR_EXTRACTOR, FEATURE_MATCHER, LOOP_CLOSER)

_REGISTRY: Dict[str, Dict[str, Type]] = {kind: {} for kind in ALGORITHM_KINDS}

logger = logging.getLogger(__name__)


def register_algorithm(kind: str, name: str) -> Callable[[Type], Type]:
    """
    Class decorator registering an implementation under a name.

    Args:
        kind: Algorithm kind (one of ALGORITHM_KINDS)
        name: Implementation name used in configuration blocks

    Returns:
        Decorator returning the class unchanged
    """
    if kind not in _REGISTRY:
        raise ValueError(f"Unknown algorithm kind: {kind}")

    def decorator(cls: Type) -> Type:
        _REGISTRY[kind][name] = cls
        cls.algorithm_kind = kind
        cls.algorithm_name = name
        return cls

    return decorator


def registered_algorithms(kind: str) -> List[str]:
    """Get the sorted names of implementations registered for a kind."""
    return sorted(_REGISTRY[kind])


def get_algorithm_class(kind: str, name: str) -> Optional[Type]:
    """Look up a registered implementation, returning None when unknown."""
    return _REGISTRY[kind].get(name)


def _nested_block(name: str, config: Dict) -> Dict:
    block = config.get(name) if config is not None else None
    if block is None:
        return {}
    if not isinstance(block, dict):
        raise ConfigurationError(name, f"expected a mapping, got {type(block).__name__}")
    return block


def create_nested_algorithm(
    name: str, config: Dict, kind: Optional[str] = None
) -> Optional[Any]:
    """
    Build the implementation selected by a nested configuration block.

    Args:
        name: Key of the block in ``config`` (e.g. "feature_matcher")
        config: Configuration dictionary holding the block
        kind: Algorithm kind; defaults to ``name``

    Returns:
        Configured instance, or None when the block selects no implementation
    """
    kind = kind if kind is not None else name
    block = _nested_block(name, config)
    impl_name = block.get("type") or ""
    if not impl_name:
        return None

    cls = get_algorithm_class(kind, impl_name)
    if cls is None:
        raise ConfigurationError(
            name,
            f"unknown {kind} implementation '{impl_name}' "
            f"(available: {', '.join(registered_algorithms(kind)) or 'none'})",
        )

    logger.debug(f"Creating {kind} '{impl_name}' for '{name}'")
    return cls(config=dict(block.get(impl_name) or {}))


def check_nested_algorithm_configuration(
    name: str, config: Dict, kind: Optional[str] = None
) -> bool:
    """
    Check that a nested configuration block selects a valid implementation.

    Args:
        name: Key of the block in ``config``
        config: Configuration dictionary holding the block
        kind: Algorithm kind; defaults to ``name``

    Returns:
        True if the block names a registered implementation whose own
        configuration passes its ``check_configuration``
    """
    kind = kind if kind is not None else name
    try:
        block = _nested_block(name, config)
    except ConfigurationError as e:
        logger.warning(str(e))
        return False

    impl_name = block.get("type") or ""
    cls = get_algorithm_class(kind, impl_name) if impl_name else None
    if cls is None:
        logger.warning(f"Configuration for '{name}' has no valid implementation type")
        return False

    sub_config = block.get(impl_name) or {}
    if not isinstance(sub_config, dict):
        logger.warning(f"Configuration for '{name}:{impl_name}' is not a mapping")
        return False

    check = getattr(cls, "check_configuration", None)
    if check is not None and not check(sub_config):
        logger.warning(f"Invalid configuration for '{name}:{impl_name}'")
        return False

    return True


def get_nested_algorithm_configuration(algorithm: Optional[Any]) -> Dict:
    """
    Describe an algorithm instance as a nested configuration block.

    Args:
        algorithm: Configured instance or None

    Returns:
        Block of the form {"type": impl_name, impl_name: {...}}
    """
    if algorithm is None:
        return {"type": ""}

    impl_name = getattr(algorithm, "algorithm_name", type(algorithm).__name__)
    get_config = getattr(algorithm, "get_configuration", None)
    sub_config = get_config() if get_config is not None else {}
    return {"type": impl_name, impl_name: sub_config}
