import asyncio

from fakes import FakeConnection, eventually

from relay.broadcast import Dispatcher
from relay.connection import ConnectionHandle
from relay.schemas import Message, MessageKind
from relay.state import ConnectionRegistry


async def _connect(registry: ConnectionRegistry, name: str) -> ConnectionHandle:
    handle = ConnectionHandle(FakeConnection(remote=name))
    await registry.register(handle)
    handle.start()
    return handle


def test_text_reaches_everyone_but_the_sender():
    async def run():
        registry = ConnectionRegistry()
        dispatcher = Dispatcher(registry)
        a, b, c = [await _connect(registry, name) for name in "abc"]

        await dispatcher.broadcast(a.id, Message.text("hello"))

        await eventually(lambda: b.connection.sent and c.connection.sent)
        await asyncio.sleep(0.01)
        for handle in (b, c):
            assert len(handle.connection.sent) == 1
            received = handle.connection.sent[0]
            assert received.kind is MessageKind.TEXT
            assert received.as_text() == "hello"
        assert a.connection.sent == []
        assert dispatcher.broadcasts_total == 1
        assert dispatcher.enqueue_attempts == 2
        await registry.close_all()

    asyncio.run(run())


def test_binary_is_relayed_unconverted():
    async def run():
        registry = ConnectionRegistry()
        dispatcher = Dispatcher(registry)
        a, b = await _connect(registry, "a"), await _connect(registry, "b")

        message = Message.binary(b"\x01\x02")
        await dispatcher.broadcast(a.id, message)

        await eventually(lambda: b.connection.sent)
        assert b.connection.sent == [message]
        assert b.connection.sent[0].kind is MessageKind.BINARY
        await registry.close_all()

    asyncio.run(run())


def test_broadcasts_arrive_in_dispatch_order():
    async def run():
        registry = ConnectionRegistry()
        dispatcher = Dispatcher(registry)
        a, b = await _connect(registry, "a"), await _connect(registry, "b")

        for idx in range(20):
            await dispatcher.broadcast(a.id, Message.text(f"b{idx}"))

        await eventually(lambda: len(b.connection.sent) == 20)
        assert [m.as_text() for m in b.connection.sent] == [f"b{idx}" for idx in range(20)]
        await registry.close_all()

    asyncio.run(run())


def test_closed_target_does_not_fail_broadcast():
    async def run():
        registry = ConnectionRegistry()
        dispatcher = Dispatcher(registry)
        a, b, c = [await _connect(registry, name) for name in "abc"]

        # b is closed but not yet unregistered, as happens mid-disconnect
        b.close()
        await dispatcher.broadcast(a.id, Message.text("still here"))

        await eventually(lambda: c.connection.sent)
        assert b.connection.sent == []
        assert c.connection.sent[0].as_text() == "still here"
        await registry.close_all()

    asyncio.run(run())


def test_slow_recipient_does_not_block_others():
    async def run():
        registry = ConnectionRegistry()
        dispatcher = Dispatcher(registry)
        a, slow, fast = [await _connect(registry, name) for name in ("a", "slow", "fast")]
        slow.connection.send_gate = asyncio.Event()

        for idx in range(3):
            await asyncio.wait_for(dispatcher.broadcast(a.id, Message.text(str(idx))), timeout=1)

        await eventually(lambda: len(fast.connection.sent) == 3)
        assert slow.connection.sent == []

        slow.connection.send_gate.set()
        await eventually(lambda: len(slow.connection.sent) == 3)
        await registry.close_all()

    asyncio.run(run())


def test_broadcast_with_no_other_connections():
    async def run():
        registry = ConnectionRegistry()
        dispatcher = Dispatcher(registry)
        a = await _connect(registry, "a")

        await dispatcher.broadcast(a.id, Message.binary(b"\x01\x02"))

        assert dispatcher.enqueue_attempts == 0
        assert a.connection.sent == []
        await registry.close_all()

    asyncio.run(run())
