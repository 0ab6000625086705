"""Tests for configuration loading."""

import yaml

from sheetlens.config import SheetLensConfig, StorageConfig, create_default_config


def test_from_yaml(tmp_path):
    path = tmp_path / "sheetlens.yaml"
    path.write_text(yaml.safe_dump({
        "storage": {"database_url": "sqlite://", "upload_dir": str(tmp_path / "up")},
        "analysis": {"top_products": 5},
        "server": {"port": 9000},
    }))

    config = SheetLensConfig.from_yaml(str(path))
    assert config.storage.database_url == "sqlite://"
    assert config.analysis.top_products == 5
    assert config.analysis.window_months == 12
    assert config.server.port == 9000
    assert config.server.max_upload_bytes == 10 * 1024 * 1024


def test_empty_yaml_uses_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    config = SheetLensConfig.from_yaml(str(path))
    assert config.analysis.recent_sales == 10


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SHEETLENS_DATABASE_URL", "sqlite:////tmp/env.db")
    monkeypatch.setenv("SHEETLENS_UPLOAD_DIR", "/tmp/env-uploads")
    storage = StorageConfig()
    assert storage.database_url == "sqlite:////tmp/env.db"
    assert storage.upload_dir == "/tmp/env-uploads"


def test_default_config_rooted_at_data_dir(tmp_path):
    config = create_default_config(data_dir=str(tmp_path))
    assert config.storage.database_url == f"sqlite:///{tmp_path / 'sheetlens.db'}"
    assert config.storage.upload_dir == str(tmp_path / "uploads")
    assert "secret_key" not in config.to_dict()["server"]
