"""Tests for write transactions and gated reads through JunosClient."""
import asyncio

import pytest

from mcp_junos_config.devices.base import DeviceMessage
from mcp_junos_config.errors import (
    CommandTimeoutError,
    CommitError,
    DriftError,
    LockError,
    SessionOpenError,
    StageError,
)


class TestTransaction:
    """Tests for the lock, stage, commit, clear discipline."""

    @pytest.mark.asyncio
    async def test_commit_then_exists(self, client, device):
        async with client.transaction() as txn:
            await txn.stage(["set foo bar", "set foo baz except"])
            await txn.commit("create resource test")
            await txn.verify_exists("foo")

        assert await client.exists("foo") is True
        output = await client.show_config("foo")
        assert output.splitlines() == ["set foo bar", "set foo baz except"]
        assert device.lock_owner is None
        assert device.open_sessions == 0

    @pytest.mark.asyncio
    async def test_stage_failure_leaves_active_unchanged(self, client, device):
        device.active = ["keep me"]
        before = list(device.active)

        with pytest.raises(StageError) as exc:
            async with client.transaction() as txn:
                await txn.stage(["set foo bar", "set foo <invalid-syntax>"])
                await txn.commit("never")

        assert exc.value.statement == "set foo <invalid-syntax>"
        assert device.active == before
        assert device.candidate == before
        assert device.lock_owner is None
        assert device.commits == []
        assert await client.exists("foo") is False

    @pytest.mark.asyncio
    async def test_stage_failure_at_any_position(self, client, device):
        batch = ["set a 1", "set b 2", "set c 3", "set d 4"]
        for k in range(len(batch)):
            device.active = ["base x"]
            bad = list(batch)
            bad[k] = "set broken <oops>"
            with pytest.raises(StageError):
                async with client.transaction() as txn:
                    await txn.stage(bad)
                    await txn.commit("never")
            assert device.active == ["base x"]
            assert device.lock_owner is None

    @pytest.mark.asyncio
    async def test_clear_runs_before_close(self, client, device):
        with pytest.raises(StageError):
            async with client.transaction() as txn:
                await txn.stage(["set foo <bad>"])
        ops = [op for _, op in device.log]
        assert ops.index("clear") < ops.index("unlock") < ops.index("close")

    @pytest.mark.asyncio
    async def test_clear_runs_after_success(self, client, device):
        async with client.transaction() as txn:
            await txn.stage(["set foo bar"])
            await txn.commit("c")
        ops = [op for _, op in device.log]
        assert ops[-3:] == ["clear", "unlock", "close"]

    @pytest.mark.asyncio
    async def test_commit_error_keeps_warnings(self, client, device):
        device.commit_errors = [DeviceMessage(message="commit failed")]
        device.commit_warnings = [DeviceMessage(message="deprecated knob", severity="warning")]

        with pytest.raises(CommitError) as exc:
            async with client.transaction() as txn:
                await txn.stage(["set foo bar"])
                await txn.commit("c")

        assert "deprecated knob" in exc.value.warnings
        assert device.active == []
        assert device.lock_owner is None

    @pytest.mark.asyncio
    async def test_drift_detected_and_lock_released(self, client, device):
        device.drop_on_commit = {"foo"}
        with pytest.raises(DriftError, match="not exists after commit"):
            async with client.transaction() as txn:
                await txn.stage(["set foo bar"])
                await txn.commit("c")
                await txn.verify_exists("foo", "object foo")
        assert device.commits == ["c"]
        assert device.lock_owner is None

    @pytest.mark.asyncio
    async def test_non_device_error_still_cleans_up(self, client, device):
        with pytest.raises(KeyError):
            async with client.transaction() as txn:
                await txn.stage(["set foo bar"])
                raise KeyError("caller bug")
        assert device.candidate == []
        assert device.lock_owner is None
        assert device.open_sessions == 0

    @pytest.mark.asyncio
    async def test_timeout_still_cleans_up(self, client, device):
        device.commit_exception = CommandTimeoutError("no reply within 30s")
        with pytest.raises(CommandTimeoutError):
            async with client.transaction() as txn:
                await txn.stage(["set foo bar"])
                await txn.commit("c")
        assert device.candidate == []
        assert device.lock_owner is None
        assert device.open_sessions == 0

    @pytest.mark.asyncio
    async def test_wait_for_timeout_clears_and_unlocks_before_close(self, client, device):
        device.commit_delay = 10

        async def write():
            async with client.transaction() as txn:
                await txn.stage(["set foo bar"])
                await txn.commit("c")

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(write(), 0.05)
        ops = [op for _, op in device.log]
        assert ops[-3:] == ["clear", "unlock", "close"]
        assert device.commits == []
        assert device.lock_owner is None
        assert device.open_sessions == 0

    @pytest.mark.asyncio
    async def test_cancelled_task_clears_and_unlocks(self, client, device):
        device.commit_delay = 10
        committing = asyncio.Event()

        async def write():
            async with client.transaction() as txn:
                await txn.stage(["set foo bar"])
                committing.set()
                await txn.commit("c")

        task = asyncio.create_task(write())
        await committing.wait()
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        ops = device.session_ops(1)
        assert ops[:3] == ["open", "lock", "load 1"]
        assert ops[-3:] == ["clear", "unlock", "close"]
        assert device.lock_owner is None


class TestLockExclusion:
    """Tests for mutual exclusion between writers."""

    @pytest.mark.asyncio
    async def test_second_writer_gets_lock_error(self, client, device):
        a_locked = asyncio.Event()
        b_done = asyncio.Event()
        results = {}

        async def writer_a():
            async with client.transaction() as txn:
                a_locked.set()
                await b_done.wait()
                await txn.stage(["set a 1"])
                await txn.commit("a")

        async def writer_b():
            await a_locked.wait()
            try:
                async with client.transaction():
                    results["b"] = "locked"
            except LockError as e:
                results["b"] = e
            finally:
                b_done.set()

        await asyncio.gather(writer_a(), writer_b())
        assert isinstance(results["b"], LockError)
        assert device.active == ["a 1"]
        assert device.lock_owner is None

    @pytest.mark.asyncio
    async def test_lock_free_again_after_release(self, client, device):
        async with client.transaction() as txn:
            await txn.stage(["set a 1"])
            await txn.commit("a")
        async with client.transaction() as txn:
            await txn.stage(["set b 2"])
            await txn.commit("b")
        assert device.active == ["a 1", "b 2"]

    @pytest.mark.asyncio
    async def test_lock_error_skips_clear(self, client, device):
        device.lock_owner = 999
        with pytest.raises(LockError):
            async with client.transaction():
                pass
        ops = [op for _, op in device.log]
        assert "clear" not in ops
        assert ops[-1] == "close"
        assert device.lock_owner == 999


class TestGatedReads:
    """Tests for read serialization through the gate."""

    @pytest.mark.asyncio
    async def test_concurrent_reads_never_interleave(self, client, device):
        device.active = ["foo bar", "baz qux"]

        async def reader(session):
            await session.command("show configuration foo | display set")
            await session.command("show configuration baz | display set")
            await session.command("show configuration foo | display set relative")
            return session.transport.session_id

        ids = await asyncio.gather(client.read(reader), client.read(reader), client.read(reader))

        sequence = [sid for sid, _ in device.log]
        for sid in ids:
            positions = [i for i, s in enumerate(sequence) if s == sid]
            assert positions == list(range(positions[0], positions[-1] + 1))

    @pytest.mark.asyncio
    async def test_second_reader_acquires_after_first_releases(self, client, gate):
        async def reader(session):
            await asyncio.sleep(0.01)
            return True

        await asyncio.gather(client.read(reader, label="r1"), client.read(reader, label="r2"))
        r1, r2 = gate.history
        assert r2.acquired_at >= r1.released_at

    @pytest.mark.asyncio
    async def test_gate_released_when_read_fails(self, client, gate, device):
        async def reader(session):
            raise ValueError("parse failure")

        with pytest.raises(ValueError):
            await client.read(reader)
        assert not gate.locked
        assert device.open_sessions == 0

    @pytest.mark.asyncio
    async def test_exists_is_idempotent(self, client, device):
        device.active = ["foo bar"]
        assert await client.exists("foo") == await client.exists("foo") == True
        assert await client.exists("nope") == await client.exists("nope") == False

    @pytest.mark.asyncio
    async def test_transaction_reads_use_gate(self, client, gate):
        async with client.transaction() as txn:
            await txn.exists("foo")
        assert [r.label for r in gate.history] == ["exists foo"]

    @pytest.mark.asyncio
    async def test_facts(self, client):
        facts = await client.facts()
        assert facts.hardware_model == "srx345"
        assert facts.supports_security()


class TestSessionOpen:
    """Tests for session establishment from the client."""

    @pytest.mark.asyncio
    async def test_open_failure_surfaces(self, client, device):
        device.fail_connects = 1
        with pytest.raises(SessionOpenError):
            await client.exists("foo")
        assert device.connects == 1
        assert device.open_sessions == 0
