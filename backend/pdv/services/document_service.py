# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import DocumentSequence, Store

SALE_DOCUMENT_TYPE = "SALE"
RECEIPT_DOCUMENT_TYPE = "STOCK_RECEIPT"


def _current_next_number(store_id: int, document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(store_id=store_id, document_type=document_type)
        .scalar()
    )


def next_document_number(
    *,
    store_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for a store/type.

    Runs inside the caller's transaction: if the caller rolls back, the number
    is not consumed. Callers own retry (run_with_retry around the whole unit
    of work), so this never commits or rolls back the session.
    """
    if not store_id:
        raise ValidationError("store_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_next_number(store_id, document_type) - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(store_id=store_id, document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            # Another transaction created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_next_number(store_id, document_type) - 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_sale_number(store_id: int) -> str:
    """Sale number: store code + '-' + per-store sequence padded to 6 digits."""
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFound("Store not found", {"store_id": store_id})
    return next_document_number(store_id=store_id, document_type=SALE_DOCUMENT_TYPE, prefix=store.code)


def next_receipt_number(store_id: int) -> str:
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFound("Store not found", {"store_id": store_id})
    return next_document_number(
        store_id=store_id,
        document_type=RECEIPT_DOCUMENT_TYPE,
        prefix=f"{store.code}-ENT",
    )
