"""
Pytest configuration and fixtures
"""

import zipfile
from pathlib import Path
from typing import Callable

import pytest

from bigdbexport.core.config.models import AppConfig, ExportConfig, ProvisioningConfig, RemoteConfig
from tests.fakes import snapshot_bytes


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a zip archive with one snapshot entry."""
    folder = tmp_path / "archives"
    folder.mkdir(exist_ok=True)

    def _make(name: str = "game1_players_db1.zip", payload: bytes | None = None, keys: tuple[str, ...] = ()) -> Path:
        path = folder / name
        data = payload if payload is not None else snapshot_bytes(*keys)
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr(path.stem + ".json", data)
        return path

    return _make


@pytest.fixture
def export_config(tmp_path: Path) -> ExportConfig:
    return ExportConfig(
        output_dir=tmp_path / "exports",
        error_log=tmp_path / "errorlog.txt",
        max_concurrent_archives=4,
    )


@pytest.fixture
def provisioning_config() -> ProvisioningConfig:
    """Provisioning that polls without sleeping."""
    return ProvisioningConfig(poll_interval_seconds=0.0)


@pytest.fixture
def app_config(export_config: ExportConfig, provisioning_config: ProvisioningConfig) -> AppConfig:
    return AppConfig(
        remote=RemoteConfig(api_url="https://bigdb.test"),
        provisioning=provisioning_config,
        export=export_config,
    )
