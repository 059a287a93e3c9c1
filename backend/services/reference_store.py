"""Read-only access to the reference medicines table used as a last-resort
interaction fallback."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from models import IndianMedicine
from services.errors import UpstreamError

logger = logging.getLogger("medassist.reference")

LOOKUP_TIMEOUT_S = float(os.getenv("MEDASSIST_REFERENCE_TIMEOUT_S", "3"))
LOOKUP_CONCURRENCY = int(os.getenv("MEDASSIST_REFERENCE_CONCURRENCY", "8"))
SEED_FILE = Path(os.getenv(
    "MEDASSIST_REFERENCE_SEED",
    str(Path(__file__).resolve().parent.parent / "data" / "reference_medicines.json"),
))


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ReferenceStore:
    def __init__(
        self,
        engine: Engine,
        timeout_s: float = LOOKUP_TIMEOUT_S,
        concurrency: int = LOOKUP_CONCURRENCY,
    ):
        self.engine = engine
        self.timeout_s = timeout_s
        self._semaphore = asyncio.Semaphore(max(1, concurrency))

    def find(self, name: str) -> IndianMedicine | None:
        pattern = f"%{escape_like(name)}%"
        with Session(self.engine) as session:
            return session.exec(
                select(IndianMedicine)
                .where(IndianMedicine.name.ilike(pattern, escape="\\"))  # type: ignore[union-attr]
                .order_by(IndianMedicine.id)
                .limit(1)
            ).first()

    async def therapeutic_class(self, name: str) -> str | None:
        async with self._semaphore:
            try:
                row = await asyncio.wait_for(asyncio.to_thread(self.find, name), timeout=self.timeout_s)
            except asyncio.TimeoutError as exc:
                raise UpstreamError(f"reference lookup timed out after {self.timeout_s}s") from exc
            except SQLAlchemyError as exc:
                raise UpstreamError(f"reference lookup failed: {exc.__class__.__name__}") from exc
        return row.therapeutic_class if row else None


def seed_reference_medicines(engine: Engine, seed_file: Path = SEED_FILE) -> int:
    """Load the bundled reference rows when the table is empty. Returns rows added."""
    if not seed_file.exists():
        logger.info("No reference seed file at %s", seed_file)
        return 0

    with Session(engine) as session:
        if session.exec(select(IndianMedicine)).first() is not None:
            return 0
        rows = json.loads(seed_file.read_text(encoding="utf-8"))
        for row in rows:
            session.add(IndianMedicine(**row))
        session.commit()

    logger.info("Seeded %d reference medicines from %s", len(rows), seed_file.name)
    return len(rows)
