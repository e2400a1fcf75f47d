import pytest
import yaml
from pathlib import Path
from PIL import Image
from mbc.config.models import AppConfig
from mbc.domain.models import BatchSettings, MediaType, Operation, SourceItem
from mbc.infrastructure.event_bus import EventBus
from mbc.infrastructure.history_store import HistoryStore
from mbc.infrastructure.storage import JsonKeyValueStorage

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config(tmp_path):
    """Returns a sample AppConfig object with every path inside tmp_path."""
    return AppConfig(
        general={
            "output_dir": str(tmp_path / "output"),
            "gallery_dir": str(tmp_path / "gallery"),
            "album_name": "ConvertPro",
            "debug": False,
        },
        history={
            "path": str(tmp_path / "storage.json"),
            "max_items": 50,
        },
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "mbc.yaml"

    content = {
        'general': {
            'output_dir': str(tmp_path / "output"),
            'gallery_dir': str(tmp_path / "gallery"),
            'album_name': 'ConvertPro',
            'log_path': None,
            'debug': False,
            'item_timeout_s': None,
        },
        'history': {
            'path': str(tmp_path / "storage.json"),
            'key': 'conversion_history',
            'max_items': 50,
        },
        'limits': {
            'image': 1048576,
        },
        'ffmpeg': {
            'binary': 'ffmpeg',
            'log_level': 'error',
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# EventBus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()

# ============================================================================
# History Fixtures
# ============================================================================

@pytest.fixture
def storage(tmp_path):
    return JsonKeyValueStorage(tmp_path / "storage.json")

@pytest.fixture
def history_store(storage):
    return HistoryStore(storage)

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def test_input_dir(tmp_path):
    """Creates a test input directory."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    return input_dir

@pytest.fixture
def test_output_dir(tmp_path):
    """Creates a test output directory."""
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    return output_dir

def make_image(path: Path, size=(64, 48), color=(200, 30, 30), mode="RGB", fmt=None) -> Path:
    """Writes a small solid-colour image with Pillow."""
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    Image.new(mode, size, color).save(path, format=fmt)
    return path

@pytest.fixture
def sample_images(test_input_dir):
    """Three real PNG images."""
    return [
        make_image(test_input_dir / f"photo{i}.png", size=(64 + i * 8, 48), color=(40 * i, 90, 160))
        for i in range(3)
    ]

@pytest.fixture
def corrupt_image(test_input_dir):
    """A file with an image extension that Pillow cannot decode."""
    f = test_input_dir / "broken.png"
    f.write_bytes(b"this is not a png at all " * 10)
    return f

def item_for(path: Path) -> SourceItem:
    return SourceItem(source_uri=str(path), display_name=path.name)

@pytest.fixture
def image_settings():
    return BatchSettings(media_type=MediaType.IMAGE, operation=Operation.CONVERT, output_format="jpg", quality=85)

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (integration tests with real files)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )

@pytest.fixture
def image_factory():
    """make_image as a fixture for test modules."""
    return make_image

@pytest.fixture
def as_item():
    """item_for as a fixture for test modules."""
    return item_for
