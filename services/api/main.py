from datetime import datetime

from fastapi import FastAPI
from pydantic import BaseModel
from sqlalchemy import select

from vrf_oracle.analytics.metrics import get_summary
from vrf_oracle.config import AppSettings
from vrf_oracle.db import FulfillmentRecord, make_session_factory, session_scope

app = FastAPI(title="VRF Oracle API")
settings = AppSettings()
SessionFactory = make_session_factory(settings.database_url)


class FulfillmentOut(BaseModel):
    id: int
    program_id: str
    request_tx: str
    response_tx: str | None
    vrf_account: str | None
    seed_hex: str | None
    proof_hex: str | None
    status: str
    source: str
    error: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, m: FulfillmentRecord):
        return cls(
            id=m.id,
            program_id=m.program_id,
            request_tx=m.request_tx,
            response_tx=m.response_tx,
            vrf_account=m.vrf_account,
            seed_hex=m.seed_hex,
            proof_hex=m.proof_hex,
            status=m.status,
            source=m.source,
            error=m.error,
            created_at=m.created_at,
        )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/fulfillments")
def list_fulfillments(limit: int = 50, status: str | None = None):
    limit = max(1, min(limit, settings.api_limit_max))
    with session_scope(SessionFactory) as s:
        q = select(FulfillmentRecord).order_by(FulfillmentRecord.id.desc()).limit(limit)
        if status:
            q = q.where(FulfillmentRecord.status == status)
        rows = s.execute(q).scalars().all()
        return [FulfillmentOut.from_model(r).model_dump(mode="json") for r in rows]


@app.get("/summary")
def summary():
    s = get_summary(SessionFactory)
    return s.__dict__
