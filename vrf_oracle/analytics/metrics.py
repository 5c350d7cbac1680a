from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select

from vrf_oracle.db import FulfillmentRecord, session_scope


@dataclass
class Summary:
    total: int
    fulfilled: int
    ignored: int
    failed: int
    backfilled: int


def get_summary(SessionFactory) -> Summary:
    with session_scope(SessionFactory) as s:
        def count(*where) -> int:
            q = select(func.count()).select_from(FulfillmentRecord)
            if where:
                q = q.where(*where)
            return s.scalar(q) or 0

        return Summary(
            total=count(),
            fulfilled=count(FulfillmentRecord.status == "fulfilled"),
            ignored=count(FulfillmentRecord.status == "ignored"),
            failed=count(FulfillmentRecord.status == "failed"),
            backfilled=count(FulfillmentRecord.source == "backfill"),
        )
