import pytest

from isuite.models.database import DEFAULT_SESSION_TITLE
from isuite.services.database_service import SessionNotFoundError
from isuite.utils.sanitizer import derive_title


async def test_new_session_has_default_title(db):
    session = await db.create_session("a@b.com")
    assert session.title == DEFAULT_SESSION_TITLE
    assert session.message_count == 0


async def test_messages_come_back_in_append_order(db):
    session = await db.create_session("a@b.com")
    for i in range(5):
        await db.append_message(session.id, "user" if i % 2 == 0 else "assistant", f"message {i}")

    messages = await db.get_messages(session.id)
    assert [m.content for m in messages] == [f"message {i}" for i in range(5)]
    assert (await db.get_session(session.id)).message_count == 5


async def test_first_user_message_names_the_session(db):
    session = await db.create_session("a@b.com")
    await db.append_message(session.id, "user", "  Summarise   my\nunread email  ")
    await db.append_message(session.id, "user", "and then archive it")

    assert (await db.get_session(session.id)).title == "Summarise my unread email"


def test_derive_title_truncates_long_text():
    title = derive_title("x" * 80, 50)
    assert title == "x" * 50 + "..."
    assert derive_title("short", 50) == "short"


async def test_assistant_first_does_not_name_the_session(db):
    session = await db.create_session("a@b.com")
    await db.append_message(session.id, "assistant", "Hello there")
    assert (await db.get_session(session.id)).title == DEFAULT_SESSION_TITLE


async def test_tool_calls_are_stored(db):
    session = await db.create_session("a@b.com")
    tool_calls = [{"tool_name": "GMAIL_SEND_EMAIL", "status": "completed", "args": {"to": "x@y.com"}}]
    await db.append_message(session.id, "user", "send it")
    await db.append_message(session.id, "assistant", "Sent.", tool_calls=tool_calls)

    messages = await db.get_messages(session.id)
    assert messages[0].tool_calls is None
    assert messages[1].tool_calls == tool_calls


async def test_list_sessions_newest_updated_first(db):
    first = await db.create_session("a@b.com")
    await db.append_message(first.id, "user", "first")
    second = await db.create_session("a@b.com")
    await db.append_message(second.id, "user", "second")
    await db.create_session("someone@else.com")

    assert [s.id for s in await db.list_sessions("a@b.com")] == [second.id, first.id]

    await db.append_message(first.id, "assistant", "bump")
    assert [s.id for s in await db.list_sessions("a@b.com")] == [first.id, second.id]


async def test_create_session_reuses_empty_session(db):
    first = await db.create_session("a@b.com")
    second = await db.create_session("a@b.com")
    assert second.id == first.id
    assert len(await db.list_sessions("a@b.com")) == 1

    await db.append_message(first.id, "user", "hi")
    third = await db.create_session("a@b.com")
    assert third.id != first.id


async def test_delete_removes_session_and_messages(db):
    session = await db.create_session("a@b.com")
    await db.append_message(session.id, "user", "hi")
    await db.append_message(session.id, "assistant", "hello")

    assert await db.delete_session(session.id, "a@b.com") is True
    assert await db.get_session(session.id) is None
    assert await db.get_messages(session.id) == []
    assert await db.delete_session(session.id) is False


async def test_sessions_are_scoped_to_their_owner(db):
    session = await db.create_session("a@b.com")
    assert await db.get_session(session.id, "intruder@b.com") is None
    assert await db.delete_session(session.id, "intruder@b.com") is False
    with pytest.raises(SessionNotFoundError):
        await db.append_message(session.id, "user", "hi", user_id="intruder@b.com")


async def test_append_to_unknown_session_raises(db):
    with pytest.raises(SessionNotFoundError):
        await db.append_message("missing", "user", "hi")


async def test_update_session_title(db):
    session = await db.create_session("a@b.com")
    updated = await db.update_session_title(session.id, "Renamed")
    assert updated.title == "Renamed"
    with pytest.raises(SessionNotFoundError):
        await db.update_session_title("missing", "x")


async def test_health_check(db):
    assert await db.health_check() is True
