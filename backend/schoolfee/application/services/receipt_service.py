from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schoolfee.application.errors import ConflictError
from schoolfee.domain.clock import resolve_now
from schoolfee.infrastructure.db.models import ReceiptSequence

RECEIPT_PREFIX = "RCP"


def format_receipt_number(year: int, sequence: int) -> str:
    return f"{RECEIPT_PREFIX}-{year}-{sequence:06d}"


def next_receipt_number(db: Session, *, now: datetime | None = None) -> str:
    """Reserve the next receipt number inside the caller's transaction.

    The sequence row stays locked until the caller commits, so numbers are
    strictly increasing per year and never reused.
    """
    year = resolve_now(now).year
    sequence = db.execute(
        select(ReceiptSequence).where(ReceiptSequence.year == year).with_for_update().execution_options(
            populate_existing=True
        )
    ).scalar_one_or_none()
    if sequence is None:
        sequence = ReceiptSequence(year=year, last_value=0)
        db.add(sequence)
        try:
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("Receipt numbering is busy, please retry") from exc
    sequence.last_value += 1
    db.flush()
    return format_receipt_number(year, sequence.last_value)
