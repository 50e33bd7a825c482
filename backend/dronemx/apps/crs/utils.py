# backend/dronemx/apps/crs/utils.py
from __future__ import annotations

import hashlib
import json
from datetime import date
from typing import Any, Dict

from sqlalchemy.orm import Session

from . import models as crs_models

# Scope code used in the YYXNNN serial
SCOPE_CODE_MAP = {
    crs_models.ReleaseScopeEnum.AIRCRAFT: "R",
    crs_models.ReleaseScopeEnum.WORK_ORDER: "W",
}


def generate_release_serial(
    db: Session,
    scope: crs_models.ReleaseScopeEnum,
    issue_date: date,
) -> str:
    """
    Generate a release serial in the format YYXNNNN, where:

      - YY   = last two digits of the year
      - X    = scope code ('R' aircraft release, 'W' work-order release)
      - NNNN = sequential number per (year, scope), zero-padded.

    The unique column is the final guard; a racing issue fails with a
    ConflictError at flush.
    """
    code = SCOPE_CODE_MAP[scope]
    prefix = f"{issue_date.year % 100:02d}{code}"

    last = (
        db.query(crs_models.ReleaseRecord.release_serial)
        .filter(crs_models.ReleaseRecord.release_serial.like(f"{prefix}%"))
        .order_by(crs_models.ReleaseRecord.release_serial.desc())
        .first()
    )
    last_seq = int(last[0][len(prefix):]) if last else 0
    if last_seq >= 9999:
        raise ValueError(f"Release sequence exhausted for {prefix}.")
    return f"{prefix}{last_seq + 1:04d}"


def signature_hash(payload: Dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON form of the certified facts."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
