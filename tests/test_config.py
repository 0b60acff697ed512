import pytest

from torchtracks.config import create_tracker, default_config, load_config
from torchtracks.exceptions import ConfigurationError
from torchtracks.frontend.tracking import CoreFeatureTracker, ExhaustiveLoopCloser

CONFIG_YAML = """
feature_detector:
  type: harris
  harris:
    max_features: 200
descriptor_extractor:
  type: patch
  patch:
    patch_size: 11
feature_matcher:
  type: brute_force
  brute_force:
    method: mutual_nearest
loop_closer:
  type: exhaustive
  exhaustive:
    match_req: 20
    feature_matcher:
      type: brute_force
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "tracker.yaml"
    path.write_text(CONFIG_YAML)
    return path


def test_load_config(config_file):
    config = load_config(config_file)

    assert config["feature_detector"]["harris"]["max_features"] == 200
    assert config["loop_closer"]["exhaustive"]["match_req"] == 20


def test_load_empty_config(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == {}


def test_load_non_mapping_config(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- harris\n- brief\n")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_default_config_is_a_copy():
    config = default_config()
    config["feature_detector"]["type"] = "other"
    assert default_config()["feature_detector"]["type"] == "harris"


def test_create_tracker_from_file(config_file):
    tracker = create_tracker(config_file)

    assert isinstance(tracker, CoreFeatureTracker)
    assert tracker.detector.max_features == 200
    assert tracker.extractor.patch_size == 11
    assert isinstance(tracker.loop_closer, ExhaustiveLoopCloser)
    assert tracker.loop_closer.match_req == 20


def test_create_default_tracker():
    tracker = create_tracker()
    assert tracker.detector.algorithm_name == "harris"
    assert tracker.loop_closer is None


def test_create_tracker_rejects_invalid_config():
    config = default_config()
    del config["descriptor_extractor"]
    with pytest.raises(ConfigurationError):
        create_tracker(config)
