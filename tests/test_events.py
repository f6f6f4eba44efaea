"""Room-based event fan-out."""
import asyncio

from conftest import RecordingSubscriber
from lara.services.events import EventBus, session_room, session_teacher_room, student_room, teacher_room


class FailingSubscriber:
    async def send(self, message):
        raise ConnectionResetError("client went away")


class StalledSubscriber:
    async def send(self, message):
        await asyncio.sleep(10)


def test_room_names():
    assert session_room("s1") == "session:s1"
    assert session_teacher_room("s1") == "session:s1:teacher"
    assert student_room("st1") == "student:st1"
    assert teacher_room("t1") == "teacher:t1"


def test_publish_reaches_only_room_members():
    bus = EventBus()
    teacher, student = RecordingSubscriber(), RecordingSubscriber()
    bus.join(session_teacher_room("s1"), teacher)
    bus.join(student_room("st1"), student)

    delivered = asyncio.run(bus.publish(session_teacher_room("s1"), "student-joined", {"student_id": "st1"}))

    assert delivered == 1
    assert teacher.messages[0]["event"] == "student-joined"
    assert teacher.messages[0]["room"] == "session:s1:teacher"
    assert teacher.messages[0]["data"] == {"student_id": "st1"}
    assert student.messages == []


def test_publish_to_empty_room_is_a_no_op():
    assert asyncio.run(EventBus().publish("session:nobody", "x", {})) == 0


def test_failed_subscriber_is_dropped_from_every_room():
    bus = EventBus()
    broken, healthy = FailingSubscriber(), RecordingSubscriber()
    bus.join("session:s1", broken)
    bus.join("student:st1", broken)
    bus.join("session:s1", healthy)

    assert asyncio.run(bus.publish("session:s1", "status-changed", {})) == 1
    assert bus.members("session:s1") == [healthy]
    assert bus.members("student:st1") == []


def test_stalled_subscriber_times_out():
    bus = EventBus(send_timeout=0.01)
    bus.join("teacher:t1", StalledSubscriber())
    assert asyncio.run(bus.publish("teacher:t1", "student-joined", {})) == 0
    assert bus.members("teacher:t1") == []


def test_join_is_idempotent_and_leave_all():
    bus = EventBus()
    subscriber = RecordingSubscriber()
    bus.join("session:s1", subscriber)
    bus.join("session:s1", subscriber)
    bus.join("student:st1", subscriber)
    assert bus.members("session:s1") == [subscriber]

    bus.leave_all(subscriber)
    assert bus.members("session:s1") == []
    assert bus.members("student:st1") == []
