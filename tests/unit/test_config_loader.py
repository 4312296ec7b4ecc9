from pathlib import Path

import pytest

from dryness.common.config_loader import load_analysis_config
from dryness.common.errors import ConfigError
from dryness.common.models import MonthlyThresholds


def test_load_analysis_config_from_repo_config_dir():
    cfg = load_analysis_config(Path("config"))

    assert cfg.name_field == "KAB_KOTA"
    assert cfg.province == "DIY"
    assert cfg.period == "dasarian"
    assert cfg.matching_method == "identifier"
    assert (cfg.bbox_chunk, cfg.match_chunk, cfg.grid_chunk) == (1000, 100, 500)
    assert cfg.grid_interpolation is False
    assert cfg.repair_invalid is True
    assert cfg.monthly_thresholds == MonthlyThresholds(
        ch_low=(0.0, 100.0), ch_high=301.0, sh_bn=(0.0, 84.0), sh_an=(116.0, 9999.0)
    )


def test_overlay_values_replace_nested_keys(tmp_path: Path):
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "analysis.yml").write_text(
        """export:
  period: bulanan
matching:
  method: coordinates
monthly_thresholds:
  ch_high: 250
""",
        encoding="utf-8",
    )

    cfg = load_analysis_config(Path("config"), overlay_config_dir=overlay)

    assert cfg.period == "bulanan"
    assert cfg.matching_method == "coordinates"
    assert cfg.monthly_thresholds.ch_high == 250.0
    assert cfg.monthly_thresholds.ch_low == (0.0, 100.0)
    assert cfg.name_field == "KAB_KOTA"


def test_missing_overlay_file_is_ignored(tmp_path: Path):
    cfg = load_analysis_config(Path("config"), overlay_config_dir=tmp_path)
    assert cfg.period == "dasarian"


def test_missing_base_config_raises(tmp_path: Path):
    with pytest.raises(ConfigError, match="Missing config file"):
        load_analysis_config(tmp_path)


def test_unknown_top_level_key_rejected_unless_allowed(tmp_path: Path):
    base = tmp_path / "base"
    base.mkdir()
    text = Path("config/analysis.yml").read_text(encoding="utf-8") + "extra:\n  enabled: true\n"
    (base / "analysis.yml").write_text(text, encoding="utf-8")

    with pytest.raises(ConfigError, match="Unknown keys"):
        load_analysis_config(base)
    assert load_analysis_config(base, allow_unknown=True).province == "DIY"
