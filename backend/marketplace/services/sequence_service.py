# Overview: Service-layer operations for order numbering; atomic sequence allocation.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import OrderSequence
from ..time_utils import Clock, to_epoch_millis
from .concurrency import run_with_retry

ORDER_SEQUENCE_KEY = "orders"


def next_sequence_value(sequence_key: str) -> int:
    """
    Atomically allocate the next value of a named sequence.

    The increment is a single UPDATE so concurrent callers never read the
    same value; the row is created on first use.
    """
    def _op() -> int:
        stmt = (
            update(OrderSequence)
            .where(OrderSequence.sequence_key == sequence_key)
            .values(next_number=OrderSequence.next_number + 1)
        )

        result = db.session.execute(stmt)
        if result.rowcount:
            current = (
                db.session.query(OrderSequence.next_number)
                .filter_by(sequence_key=sequence_key)
                .scalar()
            )
            return current - 1

        seq = OrderSequence(sequence_key=sequence_key, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            return 1
        except IntegrityError:
            # Another writer created the row first.
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            current = (
                db.session.query(OrderSequence.next_number)
                .filter_by(sequence_key=sequence_key)
                .scalar()
            )
            return current - 1

    return run_with_retry(_op)


def next_order_number(clock: Clock, *, pad: int = 4) -> str:
    """ORD-{unix millis}-{zero-padded sequence}."""
    millis = to_epoch_millis(clock.now())
    seq = next_sequence_value(ORDER_SEQUENCE_KEY)
    return f"ORD-{millis}-{seq:0{pad}d}"
