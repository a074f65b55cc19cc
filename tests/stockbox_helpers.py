from app.stockbox.services.device_resolver import CatalogDevice, DeviceCatalog, canonicalize
from app.stockbox.services.inbound import InboundLabel, InboundReconciler


CATALOG_NAMES = ["FMC920", "FMB920", "FMC130", "FMC003", "CV200", "Oyster3", "Truster Tag"]


def make_catalog(names=None, inactive=()) -> DeviceCatalog:
    return DeviceCatalog.from_devices(
        CatalogDevice(canonical_name=canonicalize(name), display_name=name, active=name not in inactive)
        for name in (names or CATALOG_NAMES)
    )


def make_serials(count: int, start: int = 356938035640000) -> list[str]:
    return [str(start + offset) for offset in range(count)]


def stock_box(db, device: str, box_code: str, serials, *, location: str | None = None, actor: str = "tester"):
    return InboundReconciler(db).reconcile(
        [InboundLabel(device=device, box_code=box_code, serials=tuple(serials), location=location)],
        actor=actor,
        vendor="manual",
    )
