"""Resolution of free-form vendor device strings against the device catalog.

Vendors print device names inconsistently ("FMC9202MAUWU", "FMC 920", "fmc-920",
"CV0200"). Every active catalog entry is scored by a ranked table of strategies and
the best scoring entry wins. Each strategy is a plain function of the raw and catalog
canonical forms so it can be tested in isolation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable


_HEAD_PATTERN = re.compile(r"^([A-Z]+)(\d+)")
MIN_PREFIX_LENGTH = 3


def canonicalize(value: str | None) -> str:
    return re.sub(r"[^A-Z0-9]", "", (value or "").upper())


@dataclass(frozen=True)
class CatalogDevice:
    canonical_name: str
    display_name: str
    active: bool = True
    units_per_serial: int = 1
    id: object | None = None


@dataclass(frozen=True)
class DeviceCatalog:
    """Read-only snapshot of the device catalog, ordered by canonical name."""

    devices: tuple[CatalogDevice, ...] = field(default_factory=tuple)

    @classmethod
    def from_devices(cls, devices: Iterable[CatalogDevice]) -> "DeviceCatalog":
        return cls(devices=tuple(sorted(devices, key=lambda device: device.canonical_name)))

    def active_devices(self) -> list[CatalogDevice]:
        return [device for device in self.devices if device.active]

    def by_display_name(self, display_name: str) -> CatalogDevice | None:
        for device in self.devices:
            if device.display_name == display_name:
                return device
        return None


def _head(raw: str) -> tuple[str, str] | None:
    match = _HEAD_PATTERN.match(raw)
    if not match:
        return None
    return match.group(1), match.group(2)


def score_exact(raw: str, candidate: str) -> int:
    return 1000 if raw == candidate else 0


def score_prefix(raw: str, candidate: str) -> int:
    if len(candidate) >= MIN_PREFIX_LENGTH and raw.startswith(candidate):
        return 900 + len(candidate)
    return 0


def score_pad3(raw: str, candidate: str) -> int:
    head = _head(raw)
    if head and f"{head[0]}{head[1].zfill(3)}" == candidate:
        return 850
    return 0


def score_trim3(raw: str, candidate: str) -> int:
    head = _head(raw)
    if head and f"{head[0]}{head[1][:3]}" == candidate:
        return 840
    return 0


def score_pad4(raw: str, candidate: str) -> int:
    head = _head(raw)
    if head and f"{head[0]}{head[1].zfill(4)}" == candidate:
        return 830
    return 0


def score_reverse_prefix(raw: str, candidate: str) -> int:
    if len(raw) >= MIN_PREFIX_LENGTH and candidate.startswith(raw):
        return 700 + len(raw)
    return 0


ScoreStrategy = Callable[[str, str], int]

STRATEGIES: tuple[tuple[str, ScoreStrategy], ...] = (
    ("exact", score_exact),
    ("prefix", score_prefix),
    ("pad3", score_pad3),
    ("trim3", score_trim3),
    ("pad4", score_pad4),
    ("reverse_prefix", score_reverse_prefix),
)


def score_candidate(raw: str, candidate: str) -> int:
    if not raw or not candidate:
        return 0
    return max(strategy(raw, candidate) for _name, strategy in STRATEGIES)


def resolve_device(raw: str | None, catalog: DeviceCatalog) -> CatalogDevice | None:
    canon = canonicalize(raw)
    if not canon:
        return None
    best: CatalogDevice | None = None
    best_score = 0
    for device in catalog.active_devices():
        score = score_candidate(canon, device.canonical_name)
        if score > best_score:
            best, best_score = device, score
    return best


def resolve_device_display(raw: str | None, catalog: DeviceCatalog) -> str | None:
    device = resolve_device(raw, catalog)
    return device.display_name if device else None
