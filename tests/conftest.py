from __future__ import annotations

import shutil
from pathlib import Path

import pytest

FIXTURE_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture()
def enigma_settings(tmp_path: Path) -> Path:
    settings_dir = tmp_path / "settings"
    settings_dir.mkdir()
    shutil.copy(FIXTURE_DIR / "sample_lamedb", settings_dir / "lamedb")
    for name in ("satellites.xml", "bouquets.tv", "userbouquet.favourites.tv", "userbouquet.news.tv"):
        shutil.copy(FIXTURE_DIR / name, settings_dir / name)
    return settings_dir
