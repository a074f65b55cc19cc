from sqlalchemy import select

from app.stockbox.db.models import Device
from app.stockbox.services.device_resolver import CatalogDevice, DeviceCatalog


class DeviceRepository:
    def __init__(self, db):
        self.db = db

    def list_devices(self, *, active_only: bool = False) -> list[Device]:
        stmt = select(Device).order_by(Device.canonical_name)
        if active_only:
            stmt = stmt.where(Device.active.is_(True))
        return self.db.execute(stmt).scalars().all()

    def load_catalog(self) -> DeviceCatalog:
        return DeviceCatalog.from_devices(
            CatalogDevice(
                canonical_name=device.canonical_name,
                display_name=device.display_name,
                active=device.active,
                units_per_serial=device.units_per_serial,
                id=device.id,
            )
            for device in self.list_devices()
        )
