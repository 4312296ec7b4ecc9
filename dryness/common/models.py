"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Observation:
    """A validated geolocated CH/SH reading."""

    lat: float
    long: float
    ch: float
    sh: float

    def to_dict(self) -> dict[str, float]:
        return {"LAT": self.lat, "LONG": self.long, "CH": self.ch, "SH": self.sh}


@dataclass(frozen=True)
class CHObservation:
    lat: float
    lon: float
    ch: float
    nogrid: str | None = None


@dataclass(frozen=True)
class SHObservation:
    lat: float
    lon: float
    sh: float
    nogrid: str | None = None


@dataclass(frozen=True)
class HTHObservation:
    """Days-without-rain reading; ``hth`` stays text because it may read "masih hujan"."""

    lat: float
    lon: float
    hth: str


@dataclass(frozen=True)
class Extraction(Generic[T]):
    """Extractor output plus the number of rows dropped for unparsable values."""

    items: list[T]
    rows_in: int
    dropped: int


@dataclass(frozen=True)
class RegionFeature:
    index: int
    name: str
    geometry: dict[str, Any] | None
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RegionResult:
    region_name: str
    n_total: int = 0
    n_ch_rendah: int = 0
    pct_ch_rendah: float = 0.0
    flag_ch_rendah: int = 0
    n_ch_tinggi: int = 0
    pct_ch_tinggi: float = 0.0
    flag_ch_tinggi: int = 0
    n_sh_bn: int = 0
    pct_sh_bn: float = 0.0
    flag_sh_bn: int = 0
    n_sh_an: int = 0
    pct_sh_an: float = 0.0
    flag_sh_an: int = 0
    avg_ch: float = 0.0
    avg_sh: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MonthlyThresholds:
    ch_low: tuple[float, float]
    ch_high: float
    sh_bn: tuple[float, float]
    sh_an: tuple[float, float]


@dataclass(frozen=True)
class MonthlyFlags:
    region_name: str
    ch_bulanan_rendah: int = 0
    ch_bulanan_tinggi: int = 0
    sh_bulanan_BN: int = 0
    sh_bulanan_AN: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HTHFlags:
    region_name: str
    hth_kering: int = 0
    hth_basah: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
