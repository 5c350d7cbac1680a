from __future__ import annotations

import asyncio


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakePipeline:
    def __init__(self, gate: asyncio.Event | None = None, fail_on=()):
        self.gate = gate
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    async def process(self, program_id, logs):
        self.calls.append((program_id, tuple(logs)))
        if self.gate is not None:
            await self.gate.wait()
        if logs and logs[0] in self.fail_on:
            raise RuntimeError(f"boom {logs[0]}")
        return None


class ScriptedRpc:
    """Each logs_subscribe call consumes one script: an exception or a list of notes."""

    def __init__(self, scripts):
        self.scripts = list(scripts)
        self.subscribed: list[str] = []

    async def logs_subscribe(self, program_id):
        self.subscribed.append(program_id)
        script = self.scripts.pop(0)
        if isinstance(script, Exception):
            raise script
        for note in script:
            yield note


def _watcher(rpc, pipeline, **kwargs):
    from vrf_oracle.chains.solana_watcher import SolanaWatcher
    from vrf_oracle.execution.submitter import BackoffPolicy

    return SolanaWatcher(
        program_ids=("P",),
        rpc=rpc,
        pipeline=pipeline,
        reconnect_policy=BackoffPolicy(max_attempts=0, initial=0.5, multiplier=2.0, max_delay=60.0),
        sleep=RecordingSleep(),
        **kwargs,
    )


def _note(sig, err=None):
    from vrf_oracle.chains.solana_rpc import LogNotification

    return LogNotification(signature=sig, err=err, logs=[f"log-{sig}"])


def test_stream_dispatches_successful_transactions():
    from vrf_oracle.chains.solana_watcher import SubscriptionState

    rpc = ScriptedRpc([[_note("a"), _note("b", err={"InstructionError": [0, "Custom"]}), _note("c")]])
    pipeline = FakePipeline()
    watcher = _watcher(rpc, pipeline)

    async def scenario():
        await watcher.run_subscribe("P", max_cycles=1)
        await watcher.drain()

    asyncio.run(scenario())
    assert sorted(logs for _, logs in pipeline.calls) == [("log-a",), ("log-c",)]
    assert watcher.states["P"] == SubscriptionState.DISCONNECTED
    assert watcher.sleep.delays == [0.5]


def test_handlers_do_not_block_the_stream():
    rpc = ScriptedRpc([[_note("a"), _note("b")]])

    async def scenario():
        gate = asyncio.Event()
        pipeline = FakePipeline(gate=gate)
        watcher = _watcher(rpc, pipeline)
        await watcher.run_subscribe("P", max_cycles=1)
        # the stream finished while both handlers are still waiting
        pending = len(watcher._inflight)
        gate.set()
        await watcher.drain()
        return pending, len(pipeline.calls), len(watcher._inflight)

    pending, calls, remaining = asyncio.run(scenario())
    assert pending == 2
    assert calls == 2
    assert remaining == 0


def test_reconnect_backoff_grows_until_a_notification_arrives():
    from vrf_oracle.errors import RpcTransportError, SubscriptionSetupError

    rpc = ScriptedRpc(
        [
            SubscriptionSetupError("refused"),
            RpcTransportError("reset"),
            [_note("a")],
            SubscriptionSetupError("refused"),
        ]
    )
    pipeline = FakePipeline()
    watcher = _watcher(rpc, pipeline)

    async def scenario():
        await watcher.run_subscribe("P", max_cycles=4)
        await watcher.drain()

    asyncio.run(scenario())
    assert rpc.subscribed == ["P"] * 4
    assert watcher.sleep.delays == [0.5, 1.0, 0.5, 1.0]
    assert len(pipeline.calls) == 1


def test_failed_handler_is_recorded_and_isolated(tmp_path):
    from vrf_oracle.analytics.outcomes import OutcomeRecorder
    from vrf_oracle.db import Base, FulfillmentRecord, make_engine, make_session_factory, session_scope

    db_url = f"sqlite+pysqlite:///{tmp_path / 'vrf.db'}"
    Base.metadata.create_all(make_engine(db_url))
    SessionFactory = make_session_factory(db_url)

    rpc = ScriptedRpc([[_note("a"), _note("b")]])
    pipeline = FakePipeline(fail_on={"log-a"})
    watcher = _watcher(rpc, pipeline, recorder=OutcomeRecorder(SessionFactory))

    async def scenario():
        await watcher.run_subscribe("P", max_cycles=1)
        await watcher.drain()

    asyncio.run(scenario())
    with session_scope(SessionFactory) as s:
        rows = {r.request_tx: (r.status, r.source, r.error) for r in s.query(FulfillmentRecord).all()}
    assert rows == {
        "a": ("failed", "live", "boom log-a"),
        "b": ("ignored", "live", None),
    }


def test_run_without_programs_returns():
    from vrf_oracle.chains.solana_watcher import SolanaWatcher

    watcher = SolanaWatcher(program_ids=(), rpc=ScriptedRpc([]), pipeline=FakePipeline())
    asyncio.run(watcher.run())


def test_error_transactions_are_skipped_at_debug_level():
    from loguru import logger

    records = []
    sink_id = logger.add(lambda m: records.append((m.record["level"].name, m.record["message"])), level="DEBUG")
    try:
        watcher = _watcher(ScriptedRpc([]), FakePipeline())
        assert watcher.dispatch("P", _note("bad", err={"InstructionError": [0, "Custom"]})) is None
    finally:
        logger.remove(sink_id)
    skipped = [r for r in records if r[1].startswith("Skipping error transaction")]
    assert [level for level, _ in skipped] == ["DEBUG"]
