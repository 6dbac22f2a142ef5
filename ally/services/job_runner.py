"""Batch job runners for balance score recomputation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ally.db.models.balance import UserPriority
from ally.services.balance import compute_and_save
from ally.services.errors import BalanceError


logger = logging.getLogger(__name__)


@dataclass
class JobRunResult:
    users_processed: int
    scores_written: int
    errors: int = 0


def _users_with_priorities(db: Session) -> List[UUID]:
    rows = db.query(UserPriority.user_id).distinct().all()
    return [row[0] for row in rows]


def run_balance_for_user(db: Session, user_id: UUID, *, now: Optional[datetime] = None) -> int:
    """Recompute and commit one user's balance score; returns the score."""
    row = compute_and_save(db, user_id, now=now)
    db.commit()
    return row.score


def run_balance_for_all_users(
    db: Session,
    *,
    user_ids: Optional[Iterable[UUID]] = None,
    now: Optional[datetime] = None,
) -> JobRunResult:
    ids = list(dict.fromkeys(user_ids)) if user_ids is not None else _users_with_priorities(db)
    users_processed = 0
    scores_written = 0
    errors = 0
    for uid in ids:
        users_processed += 1
        try:
            run_balance_for_user(db, uid, now=now)
        except BalanceError as exc:
            db.rollback()
            logger.info("Skipping balance for user %s: %s", uid, exc.message)
            continue
        except Exception:
            db.rollback()
            errors += 1
            logger.exception("Balance job failed for user %s", uid)
            continue
        scores_written += 1
    return JobRunResult(users_processed=users_processed, scores_written=scores_written, errors=errors)
