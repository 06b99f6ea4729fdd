"""Read marking and unread counts."""

import pytest

from app.core.enums import MessageStatus
from app.repositories.message_repository import MessageRepository


@pytest.fixture
def repo(db):
    return MessageRepository(db)


def _send(repo, db, conversation_id, sender, text):
    message = repo.create_message(
        conversation_id=conversation_id, sender_id=sender.id, content_text=text
    )
    db.commit()
    return message


def test_mark_read_only_touches_other_members_messages(repo, db, alice, bob, conversation_id):
    from_alice = _send(repo, db, conversation_id, alice, "hi bob")
    from_bob = _send(repo, db, conversation_id, bob, "hi alice")

    assert repo.count_unread(conversation_id, bob.id) == 1
    assert repo.mark_read(conversation_id, bob.id) == 1
    db.commit()
    db.expire_all()

    assert repo.get_by_id(from_alice.id).status == MessageStatus.READ
    assert repo.get_by_id(from_bob.id).status == MessageStatus.SENT
    assert repo.count_unread(conversation_id, bob.id) == 0
    assert repo.count_unread(conversation_id, alice.id) == 1


def test_mark_read_twice_changes_nothing_the_second_time(repo, db, alice, bob, conversation_id):
    _send(repo, db, conversation_id, alice, "one")
    repo.mark_read(conversation_id, bob.id)
    db.commit()

    assert repo.mark_read(conversation_id, bob.id) == 0


def test_latest_message(repo, db, alice, bob, conversation_id):
    assert repo.latest_for_conversation(conversation_id) is None
    _send(repo, db, conversation_id, alice, "first")
    last = _send(repo, db, conversation_id, bob, "second")

    assert repo.latest_for_conversation(conversation_id).id == last.id
