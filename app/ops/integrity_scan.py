from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from dataclasses import asdict

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.stockbox.core.config import settings
from app.ops.integrity_checks import CHECKS, IntegrityFinding, run_integrity_checks


def _summarize(findings: list[IntegrityFinding]) -> dict:
    counts = Counter(f.severity for f in findings)
    return {
        "total": len(findings),
        "critical": counts.get("CRITICAL", 0),
        "warn": counts.get("WARN", 0),
    }


def _format_text(summary: dict, findings: list[IntegrityFinding]) -> str:
    lines = [
        "Stock Ledger Integrity Report",
        f"Total findings: {summary['total']}",
        f"CRITICAL: {summary['critical']}",
        f"WARN: {summary['warn']}",
        "",
    ]
    for finding in findings:
        lines.append(
            f"[{finding.severity}] {finding.check_id} "
            f"entity={finding.entity} id={finding.entity_id or '-'} {finding.message}"
        )
        if finding.details:
            lines.append(f"  details={json.dumps(finding.details, default=str)}")
    return "\n".join(lines)


def run_scan(
    output_format: str,
    fail_on_critical: bool,
    *,
    checks: list[str] | None = None,
    database_url: str | None = None,
) -> int:
    if not settings.OPS_ENABLE_INTEGRITY_SCAN:
        print("Integrity scan disabled by OPS_ENABLE_INTEGRITY_SCAN.", file=sys.stderr)
        return 2
    engine = create_engine(database_url or settings.DATABASE_URL, future=True)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    try:
        with SessionLocal() as db:
            findings = run_integrity_checks(db, only=checks)
    finally:
        engine.dispose()
    summary = _summarize(findings)
    if output_format == "json":
        print(json.dumps({"summary": summary, "findings": [asdict(f) for f in findings]}, indent=2, default=str))
    else:
        print(_format_text(summary, findings))
    if fail_on_critical and summary["critical"] > 0:
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Stock ledger integrity scan")
    parser.add_argument("--format", choices=["json", "text"], default="text")
    parser.add_argument("--check", action="append", choices=sorted(CHECKS), help="Run only this check (repeatable)")
    parser.add_argument("--fail-on-critical", action="store_true")
    args = parser.parse_args(argv)
    return run_scan(args.format, args.fail_on_critical, checks=args.check)


if __name__ == "__main__":
    raise SystemExit(main())
