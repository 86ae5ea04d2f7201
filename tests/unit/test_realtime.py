import json

from app.services.realtime import RealtimeBroadcaster, job_channel, engineer_channel


class FakeWebSocket:
    def __init__(self, broken: bool = False):
        self.accepted = False
        self.messages = []
        self.broken = broken

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.broken:
            raise RuntimeError("socket closed")
        self.messages.append(json.loads(text))


def test_channel_names():
    assert job_channel("j1") == "job:j1"
    assert engineer_channel("e1") == "engineer:e1"


async def test_broadcast_reaches_only_channel_subscribers():
    rt = RealtimeBroadcaster()
    a, b = FakeWebSocket(), FakeWebSocket()
    await rt.subscribe("job:1", a)
    await rt.subscribe("job:2", b)

    delivered = await rt.broadcast("job:1", "job_completed", {"job_id": "1"})

    assert delivered == 1
    assert a.accepted
    assert a.messages == [{"type": "broadcast", "event": "job_completed", "payload": {"job_id": "1"}}]
    assert b.messages == []


async def test_broadcast_without_subscribers_is_noop():
    rt = RealtimeBroadcaster()
    assert await rt.broadcast("job:none", "status_update", {}) == 0


async def test_dead_sockets_are_dropped():
    rt = RealtimeBroadcaster()
    good, dead = FakeWebSocket(), FakeWebSocket(broken=True)
    await rt.subscribe("engineer:e1", good)
    await rt.subscribe("engineer:e1", dead)

    assert await rt.broadcast("engineer:e1", "stop_location_tracking", {}) == 1
    assert rt.subscriber_count("engineer:e1") == 1


def test_unsubscribe():
    rt = RealtimeBroadcaster()
    ws = FakeWebSocket()
    rt._channels["job:1"] = [ws]
    rt.unsubscribe("job:1", ws)
    assert rt.subscriber_count("job:1") == 0
