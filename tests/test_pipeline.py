# tests/test_pipeline.py
"""Tests for the private chat message pipeline."""

import pytest
from sqlalchemy.exc import OperationalError

from privchat.models import Message
from privchat.repositories.conversation_repo import ConversationDirectory
from privchat.services.crypto import DecryptionError, MessageCipher
from privchat.services.outcomes import OutcomeStatus
from privchat.services.pipeline import clamp_limit


async def _send(pipeline, sender, recipient, text="hello", **fields):
    outcome = await pipeline.send_message(sender, recipient, text=text, **fields)
    assert outcome.ok, outcome.error
    return outcome.value["message_data"]


async def _stored(db_session, message_id) -> Message:
    row = await db_session.get(Message, message_id)
    await db_session.refresh(row)
    return row


def _decrypt(payload, timestamp):
    return MessageCipher.decrypt_gcm(payload["text"], timestamp, payload["iv"], payload["tag"])


def test_clamp_limit():
    assert clamp_limit(None, 30, 100) == 30
    assert clamp_limit(0, 30, 100) == 30
    assert clamp_limit(500, 30, 100) == 100
    assert clamp_limit(10, 30, 100) == 10


class TestSend:
    async def test_send_and_read_scenario(self, pipeline, users, cipher):
        await _send(pipeline, 1, 2, "hello")

        inbox = await pipeline.get_messages(2, 1)
        outbox = await pipeline.get_messages(1, 2)
        assert inbox.ok and outbox.ok
        [received] = inbox.value["messages"]
        [sent] = outbox.value["messages"]
        assert _decrypt(received, received["time"]) == "hello"
        assert received["position"] == "left"
        assert sent["position"] == "right"
        assert received["type"] == "left_"
        assert "text_preview" not in received

    async def test_payload_shape(self, pipeline, users, clock):
        payload = await _send(pipeline, 1, 2, "hello")
        assert payload["from_id"] == 1 and payload["to_id"] == 2
        assert payload["time"] == clock.now
        assert payload["cipher_version"] == 2
        assert payload["user_data"]["name"] == "Alice Archer"
        assert payload["user_data"]["avatar"] == "a.png"
        assert payload["time_text"]
        assert payload["reply"] is None
        assert payload["mediaFileName"] == ""

    async def test_events_for_both_sides(self, pipeline, users, publisher):
        payload = await _send(pipeline, 1, 2, "hello")
        assert publisher.names_for(2) == ["new_message", "private_message", "notification"]
        assert publisher.names_for(1) == ["new_message"]

        [echo] = publisher.payloads(1, "new_message")
        assert echo["self"] is True
        assert echo["id"] == payload["id"]
        [delivered] = publisher.payloads(2, "new_message")
        assert delivered["position"] == "left"
        assert "self" not in delivered
        [notification] = publisher.payloads(2, "notification")
        assert notification == {
            "id": "2",
            "username": "Alice Archer",
            "avatar": "a.png",
            "message": "hello",
            "status": 200,
        }

    async def test_directory_symmetry(self, pipeline, users, db_session, clock):
        await _send(pipeline, 2, 3, "earlier")
        clock.advance(60)
        payload = await _send(pipeline, 1, 2, "latest")
        directory = ConversationDirectory(db_session)
        assert (await directory.get(1, 2)).time == payload["time"]
        assert (await directory.get(2, 1)).time == payload["time"]
        listing = await directory.list_for_owner(2, limit=10)
        assert listing[0].counterpart_id == 1
        assert (await directory.list_for_owner(1, limit=10))[0].counterpart_id == 2

    @pytest.mark.parametrize(
        "fields",
        [
            {"text": "   "},
            {"text": "", "lat": "0", "lng": "0"},
            {"text": "", "lat": "48.1", "lng": "0"},
        ],
    )
    async def test_empty_content_rejected_before_persistence(
        self, pipeline, users, publisher, db_session, fields
    ):
        outcome = await pipeline.send_message(1, 2, **fields)
        assert outcome.status is OutcomeStatus.INVALID
        assert outcome.error == "Message has no content"
        assert publisher.events == []
        assert (await pipeline.get_messages(1, 2)).value["messages"] == []

    async def test_missing_recipient_rejected(self, pipeline, users):
        outcome = await pipeline.send_message(1, 0, text="hi")
        assert outcome.status is OutcomeStatus.INVALID

    async def test_non_text_content(self, pipeline, users, publisher):
        sticker = await _send(pipeline, 1, 2, "", stickers="party.gif")
        location = await _send(pipeline, 1, 2, "", lat="48.85", lng="2.35")
        contact = await _send(pipeline, 1, 2, "", contact="Bob +100200300")
        assert sticker["text"] == "" and sticker["type"] == "right_gif"
        assert location["type"] == "right_map"
        assert contact["type_two"] == "contact" and contact["type"] == "right_contact"
        assert MessageCipher.decrypt_gcm(
            contact["text"], contact["time"], contact["iv"], contact["tag"]
        ) == "Bob +100200300"
        notices = [p["message"] for p in publisher.payloads(2, "notification")]
        assert notices == ["[sticker]", "[media]", "Bob +100200300"]

    async def test_reply_preview_is_decrypted(self, pipeline, users):
        original = await _send(pipeline, 2, 1, "question?")
        reply = await _send(pipeline, 1, 2, "answer", reply_id=original["id"])
        assert reply["reply"]["id"] == original["id"]
        assert reply["reply"]["text"] == "question?"

    async def test_reply_to_message_outside_conversation_rejected(
        self, pipeline, users, publisher
    ):
        private = await _send(pipeline, 1, 2, "private between 1 and 2")
        publisher.events.clear()

        outsider = await pipeline.send_message(3, 3, text="hi", reply_id=private["id"])
        assert outsider.status is OutcomeStatus.NOT_FOUND
        other_chat = await pipeline.send_message(1, 3, text="hi", reply_id=private["id"])
        assert other_chat.status is OutcomeStatus.NOT_FOUND
        assert publisher.events == []
        assert (await pipeline.get_messages(3, 1)).value["messages"] == []

    async def test_reply_to_hidden_message_rejected(self, pipeline, users):
        original = await _send(pipeline, 2, 1, "gone")
        await pipeline.delete_message(1, original["id"], "just_me")
        outcome = await pipeline.send_message(1, 2, text="re", reply_id=original["id"])
        assert outcome.status is OutcomeStatus.NOT_FOUND

    async def test_reply_preview_dropped_after_delete_for_everyone(self, pipeline, users):
        original = await _send(pipeline, 1, 2, "regret this")
        reply = await _send(pipeline, 1, 2, "follow-up", reply_id=original["id"])
        await pipeline.delete_message(1, original["id"], "everyone")

        [received] = (await pipeline.get_messages(2, 1)).value["messages"]
        assert received["id"] == reply["id"]
        assert received["reply_id"] == original["id"]
        assert received["reply"] is None

    async def test_presenter_never_resolves_foreign_reply(self, pipeline, users, cipher, clock):
        private = await _send(pipeline, 1, 2, "secret")
        crafted = await pipeline.messages.create(
            from_id=3,
            to_id=3,
            time=clock.now,
            reply_id=private["id"],
            **cipher.encrypt_for_storage("note to self", clock.now).as_columns(),
        )
        payload = await pipeline.presenter.present(crafted, 3)
        assert payload["reply"] is None

    async def test_notification_message_uses_preview_length(self, pipeline, users, publisher):
        await _send(pipeline, 1, 2, "x" * 300)
        [notice] = publisher.payloads(2, "notification")
        assert notice["message"] == "x" * 100

    async def test_storage_failure_becomes_internal(self, pipeline, users, publisher, mocker):
        mocker.patch.object(
            pipeline.directory,
            "touch_pair",
            side_effect=OperationalError("UPDATE", {}, Exception("disk full")),
        )
        outcome = await pipeline.send_message(1, 2, text="hello")
        assert outcome.status is OutcomeStatus.INTERNAL
        assert outcome.error == "Failed to send message"
        assert publisher.events == []
        assert (await pipeline.get_messages(1, 2)).value["messages"] == []


class TestGetAndLoadMore:
    async def test_chronological_with_cursors(self, pipeline, users):
        ids = [(await _send(pipeline, 1, 2, f"m{i}"))["id"] for i in range(6)]

        latest = await pipeline.get_messages(1, 2, limit=3)
        assert [m["id"] for m in latest.value["messages"]] == ids[3:]

        after = await pipeline.get_messages(1, 2, after_id=ids[3])
        assert [m["id"] for m in after.value["messages"]] == ids[4:]

        exact = await pipeline.get_messages(2, 1, message_id=ids[1])
        assert [m["id"] for m in exact.value["messages"]] == [ids[1]]

        older = await pipeline.load_more(1, 2, before_id=ids[3], limit=2)
        assert [m["id"] for m in older.value["messages"]] == ids[1:3]

    async def test_limits_are_capped(self, pipeline, users, mocker):
        spy = mocker.spy(pipeline.messages, "list_between")
        await pipeline.get_messages(1, 2, limit=10_000)
        await pipeline.load_more(1, 2, limit=10_000)
        await pipeline.load_more(1, 2)
        limits = [call.kwargs["limit"] for call in spy.call_args_list]
        assert limits == [100, 50, 15]

    async def test_recipient_required(self, pipeline, users):
        assert (await pipeline.get_messages(1, 0)).status is OutcomeStatus.INVALID
        assert (await pipeline.load_more(1, -1)).status is OutcomeStatus.INVALID

    async def test_corrupt_reply_surfaces_as_internal(self, pipeline, users, db_session):
        original = await _send(pipeline, 2, 1, "question?")
        await _send(pipeline, 1, 2, "answer", reply_id=original["id"])
        row = await _stored(db_session, original["id"])
        row.tag = "AAAAAAAAAAAAAAAAAAAAAA=="
        await db_session.commit()

        outcome = await pipeline.get_messages(1, 2)
        assert outcome.status is OutcomeStatus.INTERNAL
        assert outcome.error == "Failed to fetch messages"


class TestEdit:
    async def test_edit_keeps_original_time_key(self, pipeline, users, db_session, clock, cipher):
        sent = await _send(pipeline, 1, 2, "first draft")
        clock.advance(3600)
        outcome = await pipeline.edit_message(1, sent["id"], "final")
        assert outcome.ok

        row = await _stored(db_session, sent["id"])
        assert row.time == sent["time"]
        assert row.edited == 1
        assert row.text_preview == "final"
        assert cipher.decrypt_message(row) == "final"
        with pytest.raises(DecryptionError):
            MessageCipher.decrypt_gcm(row.text, clock.now, row.iv, row.tag)
        assert MessageCipher.decrypt_ecb(row.text_ecb, row.time) == "final"

    async def test_edit_notifies_both_participants(self, pipeline, users, publisher):
        sent = await _send(pipeline, 1, 2, "typo")
        publisher.events.clear()
        await pipeline.edit_message(1, sent["id"], "fixed")
        assert publisher.names_for(1) == ["message_edited"]
        assert publisher.names_for(2) == ["message_edited"]
        [event] = publisher.payloads(2, "message_edited")
        assert event["message_id"] == sent["id"]
        assert event["edited"] == 1
        assert MessageCipher.decrypt_gcm(
            event["text"], sent["time"], event["iv"], event["tag"]
        ) == "fixed"

    async def test_edit_forbidden_for_non_sender(self, pipeline, users, db_session, publisher):
        sent = await _send(pipeline, 1, 2, "mine")
        before = await _stored(db_session, sent["id"])
        original_text = before.text
        publisher.events.clear()

        outcome = await pipeline.edit_message(2, sent["id"], "hijacked")
        assert outcome.status is OutcomeStatus.FORBIDDEN
        row = await _stored(db_session, sent["id"])
        assert row.text == original_text
        assert row.edited == 0
        assert publisher.events == []

    async def test_edit_not_found_and_empty(self, pipeline, users):
        sent = await _send(pipeline, 1, 2, "mine")
        assert (await pipeline.edit_message(1, 9999, "x")).status is OutcomeStatus.NOT_FOUND
        assert (await pipeline.edit_message(1, sent["id"], "  ")).status is OutcomeStatus.INVALID
        assert (await pipeline.edit_message(1, 0, "x")).status is OutcomeStatus.INVALID

    async def test_edit_after_delete_for_everyone_is_refused(
        self, pipeline, users, db_session, publisher
    ):
        sent = await _send(pipeline, 1, 2, "retracted")
        await pipeline.delete_message(1, sent["id"], "everyone")
        publisher.events.clear()

        outcome = await pipeline.edit_message(1, sent["id"], "revived")
        assert outcome.status is OutcomeStatus.NOT_FOUND
        assert publisher.events == []
        assert (await _stored(db_session, sent["id"])).edited == 0

    async def test_edit_skips_recipient_who_hid_message(self, pipeline, users, publisher):
        sent = await _send(pipeline, 1, 2, "typo")
        await pipeline.delete_message(2, sent["id"], "just_me")
        publisher.events.clear()

        assert (await pipeline.edit_message(1, sent["id"], "fixed")).ok
        assert publisher.names_for(1) == ["message_edited"]
        assert publisher.names_for(2) == []


class TestSearch:
    async def test_search_scope(self, pipeline, users):
        hit = await _send(pipeline, 1, 2, "budget report")
        await _send(pipeline, 2, 1, "see you")

        found = await pipeline.search_messages(2, 1, "budget")
        assert [m["id"] for m in found.value["messages"]] == [hit["id"]]
        assert found.value["count"] == 1

        ciphertext_fragment = hit["text"][4:12]
        missed = await pipeline.search_messages(2, 1, ciphertext_fragment)
        assert missed.value["messages"] == []

    async def test_query_too_short(self, pipeline, users):
        outcome = await pipeline.search_messages(1, 2, " a ")
        assert outcome.status is OutcomeStatus.INVALID
        assert outcome.error == "Query must be at least 2 characters"


class TestSeen:
    async def test_unread_count_scenario(self, pipeline, conversations, users, publisher, clock):
        for i in range(3):
            await _send(pipeline, 2, 1, f"ping {i}")
        assert (await conversations.unread_count(1, 2)).value["count"] == 3

        clock.advance(5)
        outcome = await pipeline.mark_seen(1, 2)
        assert outcome.value["count"] == 3
        assert (await conversations.unread_count(1, 2)).value["count"] == 0
        assert publisher.payloads(2, "lastseen")[-1] == {
            "can_seen": 1,
            "seen": clock.now,
            "user_id": 1,
        }

    async def test_seen_is_idempotent(self, pipeline, users, db_session, clock):
        sent = await _send(pipeline, 2, 1, "hi")
        clock.advance(5)
        await pipeline.mark_seen(1, 2)
        first_seen = (await _stored(db_session, sent["id"])).seen
        clock.advance(5)
        again = await pipeline.mark_seen(1, 2)
        assert again.value["count"] == 0
        assert (await _stored(db_session, sent["id"])).seen == first_seen


class TestTyping:
    async def test_typing_events(self, pipeline, users, publisher):
        assert (await pipeline.typing(1, 2, True)).ok
        assert (await pipeline.typing(1, 2, False)).ok
        assert publisher.events == [
            (2, "typing", {"from_id": 1, "to_id": 2}),
            (2, "typing_done", {"from_id": 1, "to_id": 2}),
        ]

    async def test_typing_requires_recipient(self, pipeline, users):
        assert (await pipeline.typing(1, 0, True)).status is OutcomeStatus.INVALID


class TestDelete:
    async def test_just_me_is_independent_per_side(self, pipeline, users, publisher):
        sent = await _send(pipeline, 1, 2, "oops")
        publisher.events.clear()

        outcome = await pipeline.delete_message(1, sent["id"], "just_me")
        assert outcome.value == {"message": "Message deleted"}
        assert (await pipeline.get_messages(1, 2)).value["messages"] == []
        assert len((await pipeline.get_messages(2, 1)).value["messages"]) == 1
        assert publisher.names_for(1) == ["message_deleted"]
        assert publisher.names_for(2) == []

    async def test_recipient_just_me(self, pipeline, users, db_session):
        sent = await _send(pipeline, 1, 2, "hi")
        await pipeline.delete_message(2, sent["id"], "just_me")
        row = await _stored(db_session, sent["id"])
        assert (row.deleted_one, row.deleted_two) == (False, True)

    async def test_everyone_hides_from_both(self, pipeline, users, publisher):
        sent = await _send(pipeline, 1, 2, "regret")
        publisher.events.clear()
        outcome = await pipeline.delete_message(1, sent["id"], "everyone")
        assert outcome.ok
        assert (await pipeline.get_messages(1, 2)).value["messages"] == []
        assert (await pipeline.get_messages(2, 1)).value["messages"] == []
        assert publisher.payloads(2, "message_deleted") == [
            {"message_id": sent["id"], "delete_type": "everyone"}
        ]
        assert publisher.names_for(1) == ["message_deleted"]

    async def test_everyone_forbidden_for_recipient(self, pipeline, users, db_session):
        sent = await _send(pipeline, 1, 2, "mine")
        outcome = await pipeline.delete_message(2, sent["id"], "everyone")
        assert outcome.status is OutcomeStatus.FORBIDDEN
        row = await _stored(db_session, sent["id"])
        assert (row.deleted_one, row.deleted_two) == (False, False)

    async def test_not_found_and_outsiders(self, pipeline, users):
        sent = await _send(pipeline, 1, 2, "private")
        assert (await pipeline.delete_message(1, 999)).status is OutcomeStatus.NOT_FOUND
        assert (await pipeline.delete_message(3, sent["id"])).status is OutcomeStatus.NOT_FOUND
        assert (
            await pipeline.delete_message(1, sent["id"], "both")
        ).status is OutcomeStatus.INVALID


class TestReact:
    async def test_toggle_and_notify(self, pipeline, users, publisher):
        sent = await _send(pipeline, 1, 2, "nice")
        publisher.events.clear()

        assert (await pipeline.react(2, sent["id"], "👍")).value == {"action": "added", "reaction": "👍"}
        assert (await pipeline.react(2, sent["id"], "🔥")).value["action"] == "updated"
        assert (await pipeline.react(2, sent["id"], "🔥")).value["action"] == "removed"

        actions = [p["action"] for p in publisher.payloads(1, "message_reaction")]
        assert actions == ["added", "updated", "removed"]
        assert len(publisher.payloads(2, "message_reaction")) == 3

    async def test_reactions_appear_in_payload(self, pipeline, users):
        sent = await _send(pipeline, 1, 2, "nice")
        await pipeline.react(2, sent["id"], "👍")
        await pipeline.react(1, sent["id"], "🔥")

        [message] = (await pipeline.get_messages(1, 2)).value["messages"]
        assert message["reactions"] == [
            {"user_id": 2, "reaction": "👍"},
            {"user_id": 1, "reaction": "🔥"},
        ]
        await pipeline.react(2, sent["id"], "👍")
        [message] = (await pipeline.get_messages(2, 1)).value["messages"]
        assert message["reactions"] == [{"user_id": 1, "reaction": "🔥"}]

    async def test_react_validation(self, pipeline, users):
        sent = await _send(pipeline, 1, 2, "nice")
        assert (await pipeline.react(2, 999, "👍")).status is OutcomeStatus.NOT_FOUND
        assert (await pipeline.react(3, sent["id"], "👍")).status is OutcomeStatus.NOT_FOUND
        assert (await pipeline.react(2, sent["id"], " ")).status is OutcomeStatus.INVALID


class TestPin:
    async def test_pin_and_list(self, pipeline, users, publisher):
        first = await _send(pipeline, 1, 2, "keep this")
        second = await _send(pipeline, 2, 1, "and this")
        publisher.events.clear()

        assert (await pipeline.pin_message(1, first["id"], 2, True)).value == {"pin": "yes"}
        await pipeline.pin_message(1, second["id"], 2, True)
        pinned = await pipeline.pinned_messages(1, 2)
        assert [m["id"] for m in pinned.value["messages"]] == [second["id"], first["id"]]
        assert (await pipeline.pinned_messages(2, 1)).value["messages"] == []

        assert publisher.payloads(2, "message_pinned")[0] == {
            "message_id": first["id"],
            "pin": "yes",
            "chat_id": 1,
        }
        assert publisher.payloads(1, "message_pinned")[0]["chat_id"] == 2

        await pipeline.pin_message(1, first["id"], 2, False)
        pinned = await pipeline.pinned_messages(1, 2)
        assert [m["id"] for m in pinned.value["messages"]] == [second["id"]]

    async def test_pin_requires_ids(self, pipeline, users):
        sent = await _send(pipeline, 1, 2, "x")
        assert (await pipeline.pin_message(1, 0, 2, True)).status is OutcomeStatus.INVALID
        assert (await pipeline.pin_message(1, sent["id"], 0, True)).status is OutcomeStatus.INVALID
        assert (await pipeline.pinned_messages(1, 0)).status is OutcomeStatus.INVALID


class TestForward:
    async def test_forward_rekeys_under_new_timestamp(
        self, pipeline, users, db_session, clock, cipher
    ):
        source = await _send(pipeline, 1, 2, "pass it on")
        clock.advance(120)

        outcome = await pipeline.forward_message(1, source["id"], [3])
        [new_id] = outcome.value["forwarded_ids"]
        original = await _stored(db_session, source["id"])
        copy = await _stored(db_session, new_id)

        assert copy.time == source["time"] + 120
        assert copy.forward == 1
        assert copy.text != original.text
        assert cipher.decrypt_message(copy) == "pass it on"
        with pytest.raises(DecryptionError):
            MessageCipher.decrypt_gcm(copy.text, original.time, copy.iv, copy.tag)

    async def test_forward_to_many(self, pipeline, users, publisher, db_session, clock):
        source = await _send(pipeline, 2, 1, "broadcast", stickers="")
        publisher.events.clear()
        clock.advance(10)

        outcome = await pipeline.forward_message(1, source["id"], [2, 3, 3])
        assert len(outcome.value["forwarded_ids"]) == 2
        for recipient in (2, 3):
            assert publisher.names_for(recipient) == ["new_message", "private_message"]
            directory = ConversationDirectory(db_session)
            assert (await directory.get(1, recipient)).time == clock.now
            assert (await directory.get(recipient, 1)).time == clock.now
        echoes = publisher.payloads(1, "new_message")
        assert [echo["self"] for echo in echoes] == [True, True]
        assert all(echo["forward"] == 1 for echo in echoes)

    async def test_forward_copies_media(self, pipeline, users):
        source = await _send(pipeline, 1, 2, "", media="https://cdn/x.jpg", media_file_name="x.jpg")
        outcome = await pipeline.forward_message(1, source["id"], [3])
        [copy] = (await pipeline.get_messages(3, 1)).value["messages"]
        assert copy["id"] == outcome.value["forwarded_ids"][0]
        assert copy["media"] == "https://cdn/x.jpg"
        assert copy["mediaFileName"] == "x.jpg"
        assert copy["text"] == ""
        assert copy["type"] == "left_file"

    async def test_forward_validation(self, pipeline, users):
        source = await _send(pipeline, 1, 2, "x")
        assert (await pipeline.forward_message(1, source["id"], [])).status is OutcomeStatus.INVALID
        assert (await pipeline.forward_message(1, 0, [3])).status is OutcomeStatus.INVALID
        assert (await pipeline.forward_message(1, 999, [3])).status is OutcomeStatus.NOT_FOUND
        assert (
            await pipeline.forward_message(3, source["id"], [2])
        ).status is OutcomeStatus.NOT_FOUND


async def test_emit_happens_after_commit(pipeline, users, publisher, db_session, mocker):
    order = []
    commit = db_session.commit

    async def _commit():
        order.append("commit")
        await commit()

    async def _publish(user_id, event, payload):
        order.append(event)

    mocker.patch.object(db_session, "commit", side_effect=_commit)
    mocker.patch.object(publisher, "publish", side_effect=_publish)
    await pipeline.send_message(1, 2, text="ordered")
    assert order[0] == "commit"
