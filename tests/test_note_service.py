"""Tests for the NoteService."""
import pytest

from realm_graph.events import EventKind
from realm_graph.exceptions import (
    AccessDeniedError,
    ErrorCode,
    NoteNotFoundError,
    ValidationError,
)
from tests.conftest import OTHER_OWNER, OWNER


class TestCreateNote:
    def test_create(self, note_service, store):
        note = note_service.create_note(OWNER, "  Title  ", "<p>Body</p>", ["B", "a", "b"])
        assert note.title == "Title"
        assert note.tags == ["b", "a"]
        assert note.version == 1
        assert store.find_note_by_id(note.id).content == "<p>Body</p>"

    def test_defaults(self, note_service):
        note = note_service.create_note(OWNER, "Bare")
        assert note.content == ""
        assert note.tags == []

    @pytest.mark.parametrize(
        "title, code",
        [
            ("", ErrorCode.NOTE_TITLE_REQUIRED),
            ("   ", ErrorCode.NOTE_TITLE_REQUIRED),
            (None, ErrorCode.NOTE_TITLE_REQUIRED),
            ("x" * 201, ErrorCode.NOTE_TITLE_TOO_LONG),
        ],
    )
    def test_invalid_title(self, note_service, title, code):
        with pytest.raises(ValidationError) as exc_info:
            note_service.create_note(OWNER, title)
        assert exc_info.value.code == code


class TestReadAndUpdate:
    def test_get_note_checks_owner(self, note_service):
        note = note_service.create_note(OWNER, "Mine")
        assert note_service.get_note(note.id, OWNER).id == note.id
        with pytest.raises(AccessDeniedError):
            note_service.get_note(note.id, OTHER_OWNER)
        with pytest.raises(NoteNotFoundError):
            note_service.get_note("missing", OWNER)

    def test_list_notes_scoped_to_owner(self, note_service):
        note_service.create_note(OWNER, "One")
        note_service.create_note(OWNER, "Two")
        note_service.create_note(OTHER_OWNER, "Theirs")
        assert sorted(n.title for n in note_service.list_notes(OWNER)) == ["One", "Two"]

    def test_update_partial(self, note_service):
        note = note_service.create_note(OWNER, "Old", "content", ["keep"])
        updated = note_service.update_note(note.id, OWNER, title="New")
        assert updated.title == "New"
        assert updated.content == "content"
        assert updated.tags == ["keep"]
        assert updated.version == 2
        assert updated.updated_at >= note.updated_at

    def test_update_publishes_note_event(self, note_service, recorder):
        note = note_service.create_note(OWNER, "Old")
        assert recorder.events == []
        note_service.update_note(note.id, OWNER, tags=["fresh"])
        assert recorder.kinds == [EventKind.NOTE_UPDATED.value]
        assert recorder.events[0].note_ids == frozenset({note.id})

    def test_update_tags_and_content(self, note_service, store):
        note = note_service.create_note(OWNER, "Note", "old", ["one"])
        note_service.update_note(note.id, OWNER, content="new", tags=["Two"])
        stored = store.find_note_by_id(note.id)
        assert stored.content == "new"
        assert stored.tags == ["two"]

    def test_update_rejects_blank_title(self, note_service):
        note = note_service.create_note(OWNER, "Note")
        with pytest.raises(ValidationError):
            note_service.update_note(note.id, OWNER, title=" ")

    def test_update_requires_owner(self, note_service):
        note = note_service.create_note(OWNER, "Note")
        with pytest.raises(AccessDeniedError):
            note_service.update_note(note.id, OTHER_OWNER, title="Hijacked")


class TestDeleteNote:
    def test_delete_drops_all_relationships(
        self, note_service, relationship_service, store, recorder
    ):
        hub = note_service.create_note(OWNER, "Hub")
        left = note_service.create_note(OWNER, "Left")
        right = note_service.create_note(OWNER, "Right")
        incoming = relationship_service.create_relationship(left.id, hub.id, owner_id=OWNER)
        outgoing = relationship_service.create_relationship(hub.id, right.id, owner_id=OWNER)

        note_service.delete_note(hub.id, OWNER)

        assert store.find_note_by_id(hub.id) is None
        assert store.find_note_by_id(left.id).relationships == []
        removed = [e for e in recorder.events if e.kind == EventKind.REMOVED]
        assert {e.relationship.id for e in removed} == {incoming.id, outgoing.id}

    def test_delete_requires_owner(self, note_service, store):
        note = note_service.create_note(OWNER, "Keep me")
        with pytest.raises(AccessDeniedError):
            note_service.delete_note(note.id, OTHER_OWNER)
        assert store.find_note_by_id(note.id) is not None

    def test_delete_missing(self, note_service):
        with pytest.raises(NoteNotFoundError):
            note_service.delete_note("missing", OWNER)
