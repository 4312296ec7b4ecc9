"""Region result export."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Sequence

from dryness.common.fs import write_json, write_text
from dryness.common.models import HTHFlags, MonthlyFlags, RegionResult

TWO_PLACES = Decimal("0.01")


def result_headers(period: str) -> list[str]:
    return [
        "PROV",
        "KAB",
        "n_total",
        "pct_ch_rendah",
        f"ach_{period}_rendah",
        "pct_ch_tinggi",
        f"ach_{period}_tinggi",
        "pct_sh_bn",
        f"ash_{period}_BN",
        "pct_sh_an",
        f"ash_{period}_AN",
    ]


def format_pct(value: float) -> str:
    """Two decimals, ties rounded away from zero on the exact binary value."""
    return str(Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def _quoted(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _serialize_row(result: RegionResult, province: str) -> str:
    return ",".join(
        [
            province,
            _quoted(result.region_name),
            str(result.n_total),
            format_pct(result.pct_ch_rendah),
            str(result.flag_ch_rendah),
            format_pct(result.pct_ch_tinggi),
            str(result.flag_ch_tinggi),
            format_pct(result.pct_sh_bn),
            str(result.flag_sh_bn),
            format_pct(result.pct_sh_an),
            str(result.flag_sh_an),
        ]
    )


def results_to_csv(results: Sequence[RegionResult], period: str, province: str) -> str:
    lines = [",".join(result_headers(period))]
    lines.extend(_serialize_row(result, province) for result in results)
    return "\n".join(lines)


def write_results_csv(path: Path, results: Sequence[RegionResult], period: str, province: str) -> Path:
    write_text(path, results_to_csv(results, period, province))
    return path


def write_flags_json(path: Path, results: Sequence[MonthlyFlags | HTHFlags]) -> Path:
    write_json(path, {"regions": [result.to_dict() for result in results]})
    return path
