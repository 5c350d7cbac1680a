from __future__ import annotations

import asyncio


def test_backfill_replays_successful_transactions(tmp_path):
    from vrf_oracle.analytics.outcomes import OutcomeRecorder
    from vrf_oracle.chains.solana_rpc import SignatureInfo
    from vrf_oracle.chains.solana_watcher import SolanaWatcher
    from vrf_oracle.db import Base, FulfillmentRecord, make_engine, make_session_factory, session_scope
    from vrf_oracle.errors import DataIntegrityError, RpcTransportError

    db_url = f"sqlite+pysqlite:///{tmp_path / 'vrf.db'}"
    Base.metadata.create_all(make_engine(db_url))
    SessionFactory = make_session_factory(db_url)

    # sig0 was already fulfilled by an earlier run
    with session_scope(SessionFactory) as s:
        s.add(FulfillmentRecord(program_id="P", request_tx="sig0", status="fulfilled", source="live"))

    class FakeRpc:
        def __init__(self):
            self.calls = []

        async def get_signatures_for_address(self, address, before=None, limit=None, commitment=None):
            self.calls.append(("sigs", address, before, limit, commitment))
            if before is None:
                return [
                    SignatureInfo("sig0", None),
                    SignatureInfo("sig1", None),
                    SignatureInfo("sig2", {"InstructionError": [0, {"Custom": 1}]}),
                    SignatureInfo("sig3", None),
                ]
            if before == "sig3":
                return [SignatureInfo("sig4", None), SignatureInfo("sig5", None)]
            return []

        async def get_transaction_logs(self, signature, commitment=None):
            self.calls.append(("tx", signature))
            if signature == "sig3":
                raise RpcTransportError("timeout")
            if signature == "sig5":
                return None
            return [f"log-{signature}"]

    class FakePipeline:
        def __init__(self):
            self.seen = []

        async def process(self, program_id, logs):
            self.seen.append(logs[0])
            if logs[0] == "log-sig1":
                raise DataIntegrityError("bad record")
            return None

    rpc = FakeRpc()
    pipeline = FakePipeline()
    watcher = SolanaWatcher(
        program_ids=("P",),
        rpc=rpc,
        pipeline=pipeline,
        recorder=OutcomeRecorder(SessionFactory),
        backfill_pages=3,
        backfill_limit=10,
    )
    processed = asyncio.run(watcher.backfill())

    assert processed == 2
    assert pipeline.seen == ["log-sig1", "log-sig4"]
    fetched = [c[1] for c in rpc.calls if c[0] == "tx"]
    assert "sig0" not in fetched
    assert "sig2" not in fetched
    sig_calls = [c for c in rpc.calls if c[0] == "sigs"]
    assert sig_calls[0] == ("sigs", "P", None, 10, "finalized")
    assert sig_calls[1][2] == "sig3"

    with session_scope(SessionFactory) as s:
        rows = {r.request_tx: (r.status, r.source) for r in s.query(FulfillmentRecord).all()}
    assert rows == {
        "sig0": ("fulfilled", "live"),
        "sig1": ("failed", "backfill"),
        "sig4": ("ignored", "backfill"),
    }


def test_backfill_survives_listing_failure():
    from vrf_oracle.chains.solana_watcher import SolanaWatcher
    from vrf_oracle.errors import RpcTransportError

    class FailingRpc:
        async def get_signatures_for_address(self, address, **kwargs):
            raise RpcTransportError("node unavailable")

    class NoPipeline:
        async def process(self, program_id, logs):
            raise AssertionError("should not be called")

    watcher = SolanaWatcher(program_ids=("P", "Q"), rpc=FailingRpc(), pipeline=NoPipeline())
    assert asyncio.run(watcher.backfill()) == 0


def _unmigrated_recorder(tmp_path):
    # SQLite file without the fulfillments table
    from vrf_oracle.analytics.outcomes import OutcomeRecorder
    from vrf_oracle.db import make_session_factory

    return OutcomeRecorder(make_session_factory(f"sqlite+pysqlite:///{tmp_path / 'empty.db'}"))


class _ReplayRpc:
    def __init__(self):
        import asyncio

        self.hold = asyncio.Event()

    async def get_signatures_for_address(self, address, before=None, limit=None, commitment=None):
        from vrf_oracle.chains.solana_rpc import SignatureInfo

        return [SignatureInfo("old1", None)] if before is None else []

    async def get_transaction_logs(self, signature, commitment=None):
        return [f"log-{signature}"]

    async def logs_subscribe(self, program_id):
        from vrf_oracle.chains.solana_rpc import LogNotification

        yield LogNotification("live1", None, ["log-live1"])
        # keep the stream open
        await self.hold.wait()


class _SeenPipeline:
    def __init__(self):
        self.seen = []

    async def process(self, program_id, logs):
        self.seen.append(logs[0])
        return None


def test_backfill_tolerates_missing_outcome_table(tmp_path):
    from vrf_oracle.chains.solana_watcher import SolanaWatcher

    pipeline = _SeenPipeline()
    watcher = SolanaWatcher(
        program_ids=("P",),
        rpc=_ReplayRpc(),
        pipeline=pipeline,
        recorder=_unmigrated_recorder(tmp_path),
    )
    assert asyncio.run(watcher.backfill()) == 1
    assert pipeline.seen == ["log-old1"]


def test_database_errors_do_not_stop_live_streams(tmp_path):
    import contextlib

    from vrf_oracle.chains.solana_watcher import SolanaWatcher, SubscriptionState

    pipeline = _SeenPipeline()

    async def scenario():
        watcher = SolanaWatcher(
            program_ids=("P",),
            rpc=_ReplayRpc(),
            pipeline=pipeline,
            recorder=_unmigrated_recorder(tmp_path),
        )
        task = asyncio.create_task(watcher.run())
        for _ in range(200):
            if len(pipeline.seen) == 2:
                break
            await asyncio.sleep(0.01)
        await watcher.drain()
        alive = not task.done()
        state = watcher.states.get("P")
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return alive, state

    alive, state = asyncio.run(scenario())
    assert alive
    assert state == SubscriptionState.STREAMING
    assert sorted(pipeline.seen) == ["log-live1", "log-old1"]
