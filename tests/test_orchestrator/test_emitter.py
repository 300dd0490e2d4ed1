"""Tests for the event emitter and queue transport."""

import asyncio

import pytest

from chatgateway.orchestrator.events import KEEPALIVE_FRAME, DoneEvent, TokenEvent
from chatgateway.transport import EventEmitter, QueueTransport

from conftest import RecordingTransport


class TestEventEmitter:
    """Tests for EventEmitter."""

    @pytest.mark.asyncio
    async def test_emit_writes_frames_in_order(self) -> None:
        """Test events are written immediately as SSE frames."""
        transport = RecordingTransport()
        async with EventEmitter(transport, keepalive_interval=None) as emitter:
            await emitter.emit(TokenEvent("a"))
            await emitter.emit(TokenEvent("b"))
            assert len(transport.frames) == 2

        assert transport.frames[0] == 'data: {"type": "token", "content": "a"}\n\n'
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_close_exactly_once(self) -> None:
        """Test repeated closes close the transport once."""
        transport = RecordingTransport()
        emitter = EventEmitter(transport, keepalive_interval=None)
        async with emitter:
            await emitter.close()
            await emitter.close()
        assert transport.close_count == 1
        assert emitter.closed

    @pytest.mark.asyncio
    async def test_closed_on_exception(self) -> None:
        """Test the transport closes when the turn raises."""
        transport = RecordingTransport()
        with pytest.raises(RuntimeError):
            async with EventEmitter(transport, keepalive_interval=None):
                raise RuntimeError("boom")
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_emit_after_close_dropped(self) -> None:
        """Test events after close are silently dropped."""
        transport = RecordingTransport()
        emitter = EventEmitter(transport, keepalive_interval=None)
        await emitter.close()
        await emitter.emit(DoneEvent("m", "c"))
        assert transport.frames == []

    @pytest.mark.asyncio
    async def test_emit_rejects_non_event(self) -> None:
        """Test non-events raise even before serialization reaches the wire."""
        async with EventEmitter(RecordingTransport(), keepalive_interval=None) as emitter:
            with pytest.raises(TypeError):
                await emitter.emit("token")

    @pytest.mark.asyncio
    async def test_keepalive(self) -> None:
        """Test keep-alive comments are sent while the turn is idle."""
        transport = RecordingTransport()
        async with EventEmitter(transport, keepalive_interval=0.01):
            await asyncio.sleep(0.05)
        pings = [f for f in transport.frames if f == KEEPALIVE_FRAME]
        assert len(pings) >= 2

        # No pings after close
        count = len(transport.frames)
        await asyncio.sleep(0.03)
        assert len(transport.frames) == count


class TestQueueTransport:
    """Tests for QueueTransport."""

    @pytest.mark.asyncio
    async def test_frames_until_close(self) -> None:
        """Test the consumer sees every frame and then stops."""
        transport = QueueTransport()
        await transport.write("one")
        await transport.write("two")
        await transport.close()

        assert [f async for f in transport.frames()] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_write_after_close_raises(self) -> None:
        """Test writing to a closed transport is an error."""
        transport = QueueTransport()
        await transport.close()
        await transport.close()
        with pytest.raises(RuntimeError):
            await transport.write("late")

    @pytest.mark.asyncio
    async def test_detach_drops_frames(self) -> None:
        """Test frames written after detach are discarded."""
        transport = QueueTransport(maxsize=1)
        await transport.write("queued")
        transport.detach()
        # Would block on a full queue if not dropped
        await asyncio.wait_for(transport.write("dropped"), timeout=1.0)
        await transport.close()
        assert [f async for f in transport.frames()] == []

    @pytest.mark.asyncio
    async def test_backpressure(self) -> None:
        """Test a full queue suspends the producer until the consumer reads."""
        transport = QueueTransport(maxsize=1)
        await transport.write("first")
        pending = asyncio.create_task(transport.write("second"))
        await asyncio.sleep(0.01)
        assert not pending.done()

        frames = transport.frames()
        assert await frames.__anext__() == "first"
        await asyncio.wait_for(pending, timeout=1.0)
        assert await frames.__anext__() == "second"
        await frames.aclose()
