# Overview: Human-readable document numbers from atomic per-branch sequences.

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .transaction import require_unit_of_work


def next_document_number(
    *,
    branch_id: int,
    branch_code: str,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for a branch/type inside the current unit.

    The increment is a single UPDATE, so concurrent units never receive the
    same number. The first allocation inserts the sequence row under a
    savepoint; losing that insert race falls back to the UPDATE.
    Branch codes are unique, so numbers are globally unique.
    """
    require_unit_of_work("next_document_number")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    current_stmt = select(DocumentSequence.next_number).where(
        DocumentSequence.branch_id == branch_id,
        DocumentSequence.document_type == document_type,
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = db.session.execute(current_stmt).scalar() - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(branch_id=branch_id, document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = db.session.execute(current_stmt).scalar() - 1

    return f"{prefix}-{branch_code.upper()}-{next_num:0{pad}d}"
