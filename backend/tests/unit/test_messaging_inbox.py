import asyncio

import pytest

from revere.domain.messaging.exceptions import SubscriptionError
from revere.domain.messaging.feed import inbox_topic
from revere.domain.messaging.identity import thread_id
from revere.domain.messaging.models import Session, Thread
from revere.domain.messaging.repo import InMemoryMessagingRepository
from revere.domain.messaging.schemas import InboxEntry
from revere.domain.messaging.service import MessagingService
from revere.settings import settings

ALICE = Session(user_id="u1")


class BrokenInboxRepo(InMemoryMessagingRepository):
    async def list_threads(self, user_id: str):
        raise ConnectionError("index missing")


class GatedInboxRepo(InMemoryMessagingRepository):
    def __init__(self) -> None:
        super().__init__()
        self.loading = asyncio.Event()
        self.gate = asyncio.Event()

    async def list_threads(self, user_id: str):
        self.loading.set()
        await self.gate.wait()
        return await super().list_threads(user_id)


@pytest.mark.asyncio
async def test_empty_inbox(service):
    events = []
    inbox = service.inbox(ALICE, on_change=events.append)

    await inbox.open()

    assert inbox.entries == []
    assert inbox.unread_badge == 0
    assert not inbox.loading
    assert events[0].threads == []
    inbox.close()


@pytest.mark.asyncio
async def test_inbox_orders_and_badges(service, eventually):
    inbox = service.inbox(ALICE)
    await inbox.open()

    await service.threads.ensure_thread("u1", "u3")
    await service.threads.ensure_thread("u1", "u2")
    await eventually(lambda: len(inbox.entries) == 2)
    assert all(entry.preview == settings.inbox_empty_preview for entry in inbox.entries)

    await asyncio.sleep(0.002)
    await service.log.append(thread_id("u1", "u3"), "u3", "u1", "are you still selling it?")
    await eventually(lambda: inbox.unread_badge == 1)

    first = inbox.entries[0]
    assert first.thread_id == "u1_u3"
    assert first.other_user_id == "u3"
    assert first.other_display_name == settings.default_peer_display_name
    assert first.preview == "are you still selling it?"
    assert first.badge == "1"
    assert inbox.entries[1].other_display_name == "ben"
    inbox.close()


@pytest.mark.asyncio
async def test_badge_counts_threads_with_unread(service, eventually):
    events = []
    inbox = service.inbox(ALICE, on_change=events.append)
    await inbox.open()

    for peer in ("u2", "u3"):
        await service.threads.ensure_thread(peer, "u1")
    tid = thread_id("u1", "u2")
    for text in ("one", "two", "three"):
        await service.log.append(tid, "u2", "u1", text)
    await service.log.append(thread_id("u1", "u3"), "u3", "u1", "hey")

    await eventually(lambda: events[-1].unread_badge == 2)
    assert {entry.thread_id: entry.unread for entry in inbox.entries} == {"u1_u2": 3, "u1_u3": 1}

    await service.threads.mark_read(tid, "u1")
    await eventually(lambda: inbox.unread_badge == 1)
    inbox.close()


@pytest.mark.asyncio
async def test_close_detaches_listener(service):
    inbox = service.inbox(ALICE)
    await inbox.open()
    await inbox.open()
    assert service.repository.feed.listener_count(inbox_topic("u1")) == 1

    inbox.close()
    await asyncio.sleep(0.01)

    assert service.repository.feed.listener_count(inbox_topic("u1")) == 0


@pytest.mark.asyncio
async def test_close_during_first_load_leaves_nothing_running():
    repo = GatedInboxRepo()
    service = MessagingService(repo)
    await service.threads.ensure_thread("u1", "u2")
    events = []
    inbox = service.inbox(ALICE, on_change=events.append)

    opening = asyncio.create_task(inbox.open())
    await asyncio.wait_for(repo.loading.wait(), timeout=1.0)
    inbox.close()
    repo.gate.set()
    await opening
    await service.log.append(thread_id("u1", "u2"), "u2", "u1", "anyone?")
    await asyncio.sleep(0.02)

    assert events == []
    assert not inbox.loading
    assert repo.feed.listener_count(inbox_topic("u1")) == 0


@pytest.mark.asyncio
async def test_inbox_failure_reaches_error_callback():
    errors = []
    inbox = MessagingService(BrokenInboxRepo()).inbox(ALICE, on_error=errors.append)

    await inbox.open()

    assert len(errors) == 1
    assert isinstance(errors[0], SubscriptionError)
    assert not inbox.loading


def test_inbox_entry_caps_badge():
    thread = Thread(
        id="u1_u2",
        members=("u1", "u2"),
        member_display_names={"u2": "ben"},
        last_message_preview="",
        unread_count={"u1": 150, "u2": 0},
    )

    entry = InboxEntry.from_model(thread, self_id="u1")

    assert entry.badge == "99+"
    assert entry.unread == 150
    assert entry.preview == settings.inbox_empty_preview
    assert entry.other_display_name == "ben"
