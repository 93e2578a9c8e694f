import asyncio

import pytest

from botfleet.engine.events import Event, EventChannel


def test_publish_reaches_every_subscriber() -> None:
    async def _run() -> None:
        channel = EventChannel(queue_size=8)
        first = channel.subscribe()
        second = channel.subscribe()

        channel.publish("newLog", {"message": "hello"})

        expected = Event(kind="newLog", data={"message": "hello"})
        assert await first.get() == expected
        assert await second.get() == expected

    asyncio.run(_run())


def test_slow_subscriber_drops_oldest() -> None:
    async def _run() -> None:
        channel = EventChannel(queue_size=2)
        sub = channel.subscribe()

        for i in range(3):
            channel.publish("newLog", i)

        assert sub.dropped == 1
        assert (await sub.get()).data == 1  # type: ignore[union-attr]
        assert (await sub.get()).data == 2  # type: ignore[union-attr]

    asyncio.run(_run())


def test_close_ends_every_subscription() -> None:
    async def _run() -> None:
        channel = EventChannel()
        sub = channel.subscribe()
        channel.publish("statusUpdate", {"runningBots": 0})

        channel.close()
        channel.publish("newLog", "ignored")

        assert (await sub.get()) is not None
        assert await sub.get() is None
        assert channel.subscriber_count() == 0

        late = channel.subscribe()
        assert await asyncio.wait_for(late.get(), timeout=1) is None

    asyncio.run(_run())


def test_unsubscribed_observer_gets_nothing() -> None:
    async def _run() -> None:
        channel = EventChannel()
        kept = channel.subscribe()
        gone = channel.subscribe()

        gone.close()
        gone.close()
        channel.publish("newLog", "x")

        assert channel.subscriber_count() == 1
        assert (await kept.get()) is not None
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(gone.get(), timeout=0.05)

    asyncio.run(_run())
