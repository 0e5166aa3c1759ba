"""
Identifier generator service.

Generates:
  - Transaction ids:        {CONTAINER}-{YYMMDDHHMMSS}[-{n}]  (e.g. MSCU1234567-261017093005)
  - Cleaning certificates:  CLN-{YYYY}-{seq:06d}             (e.g. CLN-2026-000042)
  - Gate passes:            GP-{8 digits}                    (e.g. GP-93005123)

Uniqueness is checked against the database; callers run inside a
container unit so two requests for the same container never race.
"""

from datetime import datetime, timezone

from sqlalchemy import func

from depot_mnr.models import db
from depot_mnr.models.stages import StackingRequest, Survey, WashingOrder


def _now(now=None):
    return now or datetime.now(timezone.utc)


# ── Transaction id: {CONTAINER}-{YYMMDDHHMMSS} ──────────────────────────────

def generate_transaction_id(container_number: str, now: datetime | None = None) -> str:
    """
    Transaction id for a new workflow instance (the survey's id).

    A numeric suffix is appended when the timestamped id is taken, e.g.
    two surveys created in the same second.
    """
    base = f"{container_number.upper()}-{_now(now).strftime('%y%m%d%H%M%S')}"
    candidate = base
    suffix = 1
    while db.session.get(Survey, candidate) is not None:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


# ── Cleaning certificate: CLN-{YYYY}-{seq} ──────────────────────────────────

def generate_certificate_number(now: datetime | None = None) -> str:
    year = _now(now).year
    prefix = f"CLN-{year}-"
    count = (
        db.session.query(func.count(WashingOrder.id))
        .filter(WashingOrder.certificate_number.like(f"{prefix}%"))
        .scalar()
    ) or 0
    return f"{prefix}{count + 1:06d}"


# ── Gate pass: GP-{8 digits} ────────────────────────────────────────────────

def generate_gate_pass_number(now: datetime | None = None) -> str:
    """Gate pass from the last 8 digits of the epoch milliseconds."""
    millis = int(_now(now).timestamp() * 1000)
    seq = millis % 100_000_000
    candidate = f"GP-{seq:08d}"
    while db.session.execute(
        db.select(StackingRequest.id).filter_by(gate_pass_number=candidate)
    ).first() is not None:
        seq = (seq + 1) % 100_000_000
        candidate = f"GP-{seq:08d}"
    return candidate
