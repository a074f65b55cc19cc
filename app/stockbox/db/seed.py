from sqlalchemy import select

from app.stockbox.db.models import Device
from app.stockbox.services.device_resolver import canonicalize


DEFAULT_DEVICES = [
    ("FMC920", 1),
    ("FMB920", 1),
    ("FMC130", 1),
    ("FMC003", 1),
    ("FMB140", 1),
    ("TAT100", 1),
    ("CV200", 1),
    ("Oyster3", 1),
    ("Yabby3", 1),
    ("Truster Tag", 1),
]


def _get_or_create_device(db, display_name: str, units_per_serial: int) -> Device:
    canonical = canonicalize(display_name)
    device = db.execute(select(Device).where(Device.canonical_name == canonical)).scalars().first()
    if device:
        return device
    device = Device(
        canonical_name=canonical,
        display_name=display_name,
        units_per_serial=units_per_serial,
        active=True,
    )
    db.add(device)
    db.flush()
    return device


def run_seed(db, devices=None) -> list[Device]:
    seeded = [
        _get_or_create_device(db, display_name, units_per_serial)
        for display_name, units_per_serial in (devices or DEFAULT_DEVICES)
    ]
    db.commit()
    return seeded
