from __future__ import annotations

import argparse
import json

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.stockbox.core.config import settings
from app.stockbox.db.seed import DEFAULT_DEVICES, run_seed


def _parse_device(value: str) -> tuple[str, int]:
    name, _, units = value.partition(":")
    return name.strip(), int(units) if units.strip() else 1


def seed_catalog(devices: list[tuple[str, int]] | None = None, *, database_url: str | None = None) -> list[str]:
    engine = create_engine(database_url or settings.DATABASE_URL, future=True)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    try:
        with SessionLocal() as db:
            seeded = run_seed(db, devices or DEFAULT_DEVICES)
            return [device.display_name for device in seeded]
    finally:
        engine.dispose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the device catalog")
    parser.add_argument(
        "--device",
        action="append",
        type=_parse_device,
        help="Display name with optional units per serial, e.g. 'FMC920' or 'Oyster3:2' (repeatable)",
    )
    args = parser.parse_args(argv)
    print(json.dumps({"seeded": seed_catalog(args.device)}, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
