from __future__ import annotations

import threading
import time

import pytest
from fake_providers import FakeProvider

from healthguide_core import GuidanceService, ModelGateway
from records import ProfileStore, SessionStore, SQLiteRecordsDB


@pytest.fixture
def records_db(tmp_path):
    return SQLiteRecordsDB(str(tmp_path / "service-test.sqlite"))


def _service(records_db, provider) -> GuidanceService:
    return GuidanceService(
        profiles=ProfileStore(records_db),
        sessions=SessionStore(records_db),
        gateway=ModelGateway(provider),
    )


def test_concurrent_messages_to_one_session_are_all_kept(records_db):
    service = _service(records_db, FakeProvider("Noted.", on_call=lambda: time.sleep(0.2)))
    session = service.start_session("user-a")
    barrier = threading.Barrier(2)
    errors = []

    def send(content: str) -> None:
        barrier.wait()
        try:
            service.send_message(session.id, "user-a", content)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=send, args=(content,)) for content in ("first", "second")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    stored = SessionStore(records_db).load_session(session.id)
    assert sorted(message.content for message in stored.messages if message.role == "user") == ["first", "second"]
    assert [message.role for message in stored.messages] == ["user", "assistant", "user", "assistant"]


def test_second_message_sees_the_first_exchange_as_history(records_db):
    provider = FakeProvider("Noted.")
    service = _service(records_db, provider)
    session = service.start_session("user-a")

    service.send_message(session.id, "user-a", "my throat is sore")
    service.send_message(session.id, "user-a", "and now a fever")

    assert [turn["content"] for turn in provider.calls[1]["messages"]] == [
        "my throat is sore",
        "Noted.",
        "and now a fever",
    ]


def test_update_and_message_on_one_session_do_not_overwrite_each_other(records_db):
    service = _service(records_db, FakeProvider("Noted.", on_call=lambda: time.sleep(0.2)))
    session = service.start_session("user-a")

    sender = threading.Thread(target=service.send_message, args=(session.id, "user-a", "hello"))
    sender.start()
    time.sleep(0.05)
    service.update_session(session.id, "user-a", title="Renamed")
    sender.join()

    stored = SessionStore(records_db).load_session(session.id)
    assert stored.title == "Renamed"
    assert [message.content for message in stored.messages] == ["hello", "Noted."]
