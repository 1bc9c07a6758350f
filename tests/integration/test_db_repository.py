"""Integration tests for database repository."""

import time
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session

from tutor_sync.db.models import Conversation, Message
from tutor_sync.db.repository import (
    ConversationRepository,
    MessageRepository,
    like_to_regex,
)

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def session(temp_db):
    """Create a database session for testing."""
    with Session(temp_db) as session:
        yield session


class TestConversationRepository:
    """Tests for ConversationRepository."""

    def test_create_conversation(self, session):
        """Should create a new conversation."""
        repo = ConversationRepository(session)
        conv = repo.create(user_id="user-1")

        assert conv.id is not None
        assert conv.user_id == "user-1"
        assert conv.title is None
        assert conv.created_at is not None
        assert conv.updated_at is not None

    def test_create_conversation_with_session_details(self, session):
        """Should store title, learning option and topic."""
        repo = ConversationRepository(session)
        conv = repo.create(
            user_id="user-1",
            title="Algebra basics",
            learning_option="testing",
            topic="Algebra",
        )

        assert conv.title == "Algebra basics"
        assert conv.learning_option == "testing"
        assert conv.topic == "Algebra"

    def test_get_conversation(self, session):
        """Should get conversation by ID."""
        repo = ConversationRepository(session)
        created = repo.create(user_id="user-1", title="Find Me")

        found = repo.get(created.id)
        assert found is not None
        assert found.title == "Find Me"

    def test_get_nonexistent_conversation(self, session):
        """Should return None for nonexistent ID."""
        assert ConversationRepository(session).get("nonexistent-id") is None

    def test_get_for_user_checks_owner(self, session):
        """Should hide conversations owned by someone else."""
        repo = ConversationRepository(session)
        conv = repo.create(user_id="user-1")

        assert repo.get_for_user(conv.id, "user-1") is not None
        assert repo.get_for_user(conv.id, "user-2") is None

    def test_list_by_user(self, session):
        """Should list a user's conversations ordered by updated_at desc."""
        repo = ConversationRepository(session)
        for title in ("A", "B", "C"):
            repo.create(user_id="user-1", title=title)
            time.sleep(0.01)
        repo.create(user_id="user-2", title="Other")

        convs = repo.list_by_user("user-1")
        assert [c.title for c in convs] == ["C", "B", "A"]

    def test_list_by_user_with_limit_and_offset(self, session):
        """Should respect limit and offset parameters."""
        repo = ConversationRepository(session)
        for i in range(5):
            repo.create(user_id="user-1", title=f"Conv {i}")
            time.sleep(0.01)

        convs = repo.list_by_user("user-1", limit=2, offset=1)
        assert [c.title for c in convs] == ["Conv 3", "Conv 2"]

    def test_count_by_user(self, session):
        repo = ConversationRepository(session)
        repo.create(user_id="user-1")
        repo.create(user_id="user-1")
        repo.create(user_id="user-2")

        assert repo.count_by_user("user-1") == 2
        assert repo.count_by_user("nobody") == 0

    def test_touch_updates_timestamp(self, session):
        """Should move updated_at forward."""
        repo = ConversationRepository(session)
        conv = repo.create(user_id="user-1")
        original = conv.updated_at

        time.sleep(0.01)
        touched = repo.touch(conv.id)

        assert touched is not None
        assert touched.updated_at > original

    def test_touch_nonexistent(self, session):
        assert ConversationRepository(session).touch("nonexistent-id") is None

    def test_delete_conversation_removes_messages(self, session):
        """Should delete conversation and its messages."""
        conv_repo = ConversationRepository(session)
        msg_repo = MessageRepository(session)
        conv = conv_repo.create(user_id="user-1")
        msg_repo.create(conv.id, "user-1", "user", "Hello")
        msg_repo.create("unrelated", "user-1", "user", "Keep me")

        assert conv_repo.delete(conv.id) is True
        assert conv_repo.get(conv.id) is None
        assert msg_repo.list_by_conversation(conv.id) == []
        assert len(msg_repo.list_by_conversation("unrelated")) == 1

    def test_delete_nonexistent_conversation(self, session):
        assert ConversationRepository(session).delete("nonexistent-id") is False


class TestMessageRepository:
    """Tests for MessageRepository."""

    def test_create_message(self, session):
        """Should create a new message."""
        repo = MessageRepository(session)
        msg = repo.create("conv-1", "user-1", "user", "Hello", timestamp=T0)

        assert msg.id is not None
        assert msg.conversation_id == "conv-1"
        assert msg.user_id == "user-1"
        assert msg.role == "user"
        assert msg.content == "Hello"
        assert msg.created_at is not None

    def test_create_message_without_conversation_row(self, session):
        """Messages may reference a conversation that has no row."""
        msg = MessageRepository(session).create("client-side-id", "user-1", "user", "Hi")
        assert session.get(Message, msg.id) is not None
        assert session.get(Conversation, "client-side-id") is None

    def test_create_message_defaults_timestamp(self, session):
        before = datetime.now(timezone.utc).replace(tzinfo=None)
        msg = MessageRepository(session).create("conv-1", "user-1", "user", "Hi")
        assert msg.timestamp.replace(tzinfo=None) >= before

    def test_create_message_updates_conversation(self, session):
        """Should update conversation's updated_at when message is added."""
        conv_repo = ConversationRepository(session)
        conv = conv_repo.create(user_id="user-1")
        original_updated = conv.updated_at

        time.sleep(0.01)
        MessageRepository(session).create(conv.id, "user-1", "user", "Hello")

        session.refresh(conv)
        assert conv.updated_at > original_updated

    def test_list_by_conversation_orders_by_timestamp(self, session):
        """Should order by timestamp whatever the insertion order."""
        repo = MessageRepository(session)
        repo.create("conv-1", "user-1", "assistant", "third", timestamp=T0 + timedelta(seconds=30))
        repo.create("conv-1", "user-1", "user", "first", timestamp=T0)
        repo.create("conv-1", "user-1", "user", "second", timestamp=T0 + timedelta(seconds=10))

        messages = repo.list_by_conversation("conv-1")
        assert [m.content for m in messages] == ["first", "second", "third"]

    def test_list_by_conversation_equal_timestamps_keep_write_order(self, session):
        repo = MessageRepository(session)
        repo.create("conv-1", "user-1", "user", "a", timestamp=T0)
        time.sleep(0.01)
        repo.create("conv-1", "user-1", "assistant", "b", timestamp=T0)

        assert [m.content for m in repo.list_by_conversation("conv-1")] == ["a", "b"]

    def test_list_by_conversation_with_limit(self, session):
        repo = MessageRepository(session)
        for i in range(5):
            repo.create("conv-1", "user-1", "user", f"Msg {i}", timestamp=T0 + timedelta(seconds=i))

        messages = repo.list_by_conversation("conv-1", limit=2, offset=1)
        assert [m.content for m in messages] == ["Msg 1", "Msg 2"]

    def test_list_by_user(self, session):
        repo = MessageRepository(session)
        repo.create("conv-1", "user-1", "user", "mine")
        repo.create("conv-2", "user-2", "user", "theirs")

        assert [m.content for m in repo.list_by_user("user-1")] == ["mine"]

    def test_delete_message(self, session):
        repo = MessageRepository(session)
        msg = repo.create("conv-1", "user-1", "user", "bye")

        assert repo.delete(msg.id) is True
        assert repo.get(msg.id) is None
        assert repo.delete(msg.id) is False

    def test_delete_content_like(self, session):
        """Should delete only matching content of the given conversation."""
        repo = MessageRepository(session)
        repo.create("conv-1", "user-1", "assistant", "Welcome to your quiz session!")
        repo.create("conv-1", "user-1", "user", "Hello")
        repo.create("conv-2", "user-1", "assistant", "Welcome to your quiz session!")

        deleted = repo.delete_content_like("conv-1", "Welcome to your %")

        assert deleted == 1
        assert [m.content for m in repo.list_by_conversation("conv-1")] == ["Hello"]
        assert len(repo.list_by_conversation("conv-2")) == 1

    def test_delete_content_like_is_case_sensitive(self, session):
        """Lowercase text does not match an uppercase pattern."""
        repo = MessageRepository(session)
        repo.create("conv-1", "user-1", "assistant", "welcome to your first lesson")
        repo.create("conv-1", "user-1", "assistant", "Welcome to your quiz session!")

        deleted = repo.delete_content_like("conv-1", "Welcome to your %")

        assert deleted == 1
        assert [m.content for m in repo.list_by_conversation("conv-1")] == [
            "welcome to your first lesson"
        ]

    def test_delete_content_like_role_filter(self, session):
        """With a role given, other roles are never deleted."""
        repo = MessageRepository(session)
        repo.create("conv-1", "user-1", "user", "Welcome to your team! intro text")
        repo.create("conv-1", "user-1", "assistant", "Welcome to your quiz session!")

        deleted = repo.delete_content_like(
            "conv-1", "Welcome to your %", role="assistant"
        )

        assert deleted == 1
        assert [m.content for m in repo.list_by_conversation("conv-1")] == [
            "Welcome to your team! intro text"
        ]

    @pytest.mark.parametrize(
        ("pattern", "text", "matches"),
        [
            ("Welcome to your %", "Welcome to your quiz", True),
            ("Welcome to your %", "welcome to your quiz", False),
            ("a_c", "abc", True),
            ("a_c", "abbc", False),
            ("100%", "100% sure", True),
            ("(x)%", "(x) literal", True),
            ("%", "line one\nline two", True),
        ],
    )
    def test_like_to_regex(self, pattern, text, matches):
        assert (like_to_regex(pattern).fullmatch(text) is not None) is matches
