import asyncio

import pytest
from voiceorder.errors import SessionConflict, SessionNotFound
from voiceorder.session import CallSession
from voiceorder.session_store import InMemorySessionStore
from voiceorder.states import State


class GrantedAtDeadlineLock(asyncio.Lock):
    """Takes the lock at once but only hands it over after the deadline."""

    async def acquire(self):
        granted = await super().acquire()
        try:
            await asyncio.sleep(0.2)
        except asyncio.CancelledError:
            pass
        return granted


@pytest.fixture
def store():
    return InMemorySessionStore(lock_timeout=0.05)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        session = await store.create(CallSession(call_id="CA1"))
        assert await store.get("CA1") is session
        assert store.live_ids() == ["CA1"]

    @pytest.mark.asyncio
    async def test_duplicate_id_conflicts(self, store):
        await store.create(CallSession(call_id="CA1"))
        with pytest.raises(SessionConflict):
            await store.create(CallSession(call_id="CA1"))

    @pytest.mark.asyncio
    async def test_archived_id_cannot_be_reused(self, store):
        session = await store.create(CallSession(call_id="CA1"))
        session.state = State.CANCELLED
        await store.archive("CA1")
        with pytest.raises(SessionConflict):
            await store.create(CallSession(call_id="CA1"))


class TestMutate:
    @pytest.mark.asyncio
    async def test_yields_live_session(self, store):
        await store.create(CallSession(call_id="CA1"))
        async with store.mutate("CA1") as session:
            session.retry_count = 2
        assert (await store.get("CA1")).retry_count == 2

    @pytest.mark.asyncio
    async def test_unknown_id(self, store):
        with pytest.raises(SessionNotFound):
            async with store.mutate("nope"):
                pass

    @pytest.mark.asyncio
    async def test_second_writer_is_rejected(self, store):
        await store.create(CallSession(call_id="CA1"))
        async with store.mutate("CA1"):
            with pytest.raises(SessionConflict):
                async with store.mutate("CA1"):
                    pass

    @pytest.mark.asyncio
    async def test_lock_released_after_error(self, store):
        await store.create(CallSession(call_id="CA1"))
        with pytest.raises(RuntimeError):
            async with store.mutate("CA1"):
                raise RuntimeError("boom")
        async with store.mutate("CA1") as session:
            assert session.call_id == "CA1"

    @pytest.mark.asyncio
    async def test_timed_out_writer_leaves_lock_free(self, store):
        await store.create(CallSession(call_id="CA1"))
        async with store.mutate("CA1"):
            with pytest.raises(SessionConflict):
                async with store.mutate("CA1"):
                    pass
        assert not store._locks["CA1"].locked()
        async with store.mutate("CA1") as session:
            assert session.call_id == "CA1"

    @pytest.mark.asyncio
    async def test_grant_at_deadline_is_released(self, store):
        await store.create(CallSession(call_id="CA1"))
        store._locks["CA1"] = GrantedAtDeadlineLock()
        with pytest.raises(SessionConflict):
            async with store.mutate("CA1"):
                pass
        assert not store._locks["CA1"].locked()

    @pytest.mark.asyncio
    async def test_mutate_after_archive(self, store):
        session = await store.create(CallSession(call_id="CA1"))
        session.state = State.FINALIZED
        await store.archive("CA1")
        with pytest.raises(SessionNotFound):
            async with store.mutate("CA1"):
                pass


class TestArchive:
    @pytest.mark.asyncio
    async def test_non_terminal_session_stays_live(self, store):
        await store.create(CallSession(call_id="CA1"))
        with pytest.raises(ValueError):
            await store.archive("CA1")
        assert store.live_ids() == ["CA1"]

    @pytest.mark.asyncio
    async def test_archived_exactly_once(self, store):
        session = await store.create(CallSession(call_id="CA1", created_at=10.0))
        session.state = State.ABANDONED
        session.finalized_at = 20.0
        record = await store.archive("CA1")
        assert record.state == State.ABANDONED
        assert store.archived() == (record,)
        assert store.live_ids() == []
        with pytest.raises(SessionNotFound):
            await store.archive("CA1")
        assert len(store.archived()) == 1

    @pytest.mark.asyncio
    async def test_archive_snapshot_is_a_copy(self, store):
        session = await store.create(CallSession(call_id="CA1"))
        session.state = State.CANCELLED
        await store.archive("CA1")
        snapshot = store.archived()
        session2 = await store.create(CallSession(call_id="CA2"))
        session2.state = State.CANCELLED
        await store.archive("CA2")
        assert len(snapshot) == 1
        assert len(store.archived()) == 2

    @pytest.mark.asyncio
    async def test_evict(self, store):
        await store.create(CallSession(call_id="CA1"))
        evicted = await store.evict("CA1")
        assert evicted.call_id == "CA1"
        assert await store.get("CA1") is None
        assert store.archived() == ()
