import asyncio
import threading

from src.guruchat.infrastructure.realtime import ChangeEvent, Channel, RealtimeNotifier


def _msg(session_id: str, msg_id: str) -> ChangeEvent:
    return ChangeEvent(table="messages", type="INSERT", new={"id": msg_id, "session_id": session_id})


def test_subscription_filters_by_table_event_and_column():
    notifier = RealtimeNotifier()
    sub = notifier.subscribe("messages", "INSERT", ("session_id", "s1"))
    assert notifier.publish(_msg("s1", "m1")) == 1
    assert notifier.publish(_msg("s2", "m2")) == 0
    assert notifier.publish(ChangeEvent(table="messages", type="UPDATE", new={"session_id": "s1"})) == 0
    assert [e.new["id"] for e in sub.channel.drain()] == ["m1"]


def test_shared_channel_preserves_arrival_order():
    notifier = RealtimeNotifier()
    channel = Channel()
    notifier.subscribe("messages", "INSERT", ("session_id", "s1"), channel)
    notifier.subscribe("chat_sessions", "UPDATE", ("client_id", "u1"), channel)
    notifier.publish(_msg("s1", "m1"))
    notifier.publish(ChangeEvent(table="chat_sessions", type="UPDATE", new={"id": "s1", "client_id": "u1"}))
    notifier.publish(_msg("s1", "m2"))
    assert [e.table for e in channel.drain()] == ["messages", "chat_sessions", "messages"]


def test_closed_subscription_stops_receiving():
    notifier = RealtimeNotifier()
    with notifier.subscribe("messages") as sub:
        assert notifier.subscriber_count() == 1
    assert notifier.subscriber_count() == 0
    assert notifier.publish(_msg("s1", "m1")) == 0
    assert sub.channel.get() is None


def test_channel_next_event_async():
    channel = Channel()

    async def scenario():
        assert await channel.next_event(timeout=0.01) is None
        channel.put(_msg("s1", "m1"))
        event = await channel.next_event(timeout=1.0)
        channel.close()
        return event, await channel.next_event()

    event, after_close = asyncio.run(scenario())
    assert event.new["id"] == "m1"
    assert after_close is None


def test_waiting_consumer_wakes_on_put_from_another_thread():
    channel = Channel()

    async def scenario():
        loop = asyncio.get_running_loop()
        waiting = asyncio.ensure_future(channel.next_event(timeout=5.0))
        await asyncio.sleep(0)
        started = loop.time()
        threading.Timer(0.02, channel.put, args=(_msg("s1", "m1"),)).start()
        event = await waiting
        return event, loop.time() - started

    event, waited = asyncio.run(scenario())
    assert event.new["id"] == "m1"
    assert waited < 1.0


def test_close_releases_a_waiting_consumer():
    channel = Channel()

    async def scenario():
        waiting = asyncio.ensure_future(channel.next_event())
        await asyncio.sleep(0)
        channel.close()
        return await asyncio.wait_for(waiting, 1.0)

    assert asyncio.run(scenario()) is None


def test_payload_shape():
    payload = ChangeEvent(table="chat_sessions", type="UPDATE", new={"id": "s"}, old={"id": "s"}).to_payload()
    assert payload == {"table": "chat_sessions", "eventType": "UPDATE", "new": {"id": "s"}, "old": {"id": "s"}}
