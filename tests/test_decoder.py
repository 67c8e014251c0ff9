"""Tests for metadata decoding."""

import pytest

from chainnotes.indexer.decoder import (
    CreateNote,
    DeleteNote,
    UpdateNote,
    action_type,
    decode,
    decode_payload,
    parse_action,
)
from chainnotes.models.ledger import MetadataEntry
from chainnotes.models.transaction import TransactionType

LABEL = 42819


def _entries(payload, label=LABEL):
    return [
        MetadataEntry(label="674", json_metadata={"msg": ["unrelated"]}),
        MetadataEntry(label=str(label), json_metadata=payload),
    ]


def test_decode_selects_target_label():
    mutation = decode(_entries({"action": "CREATE", "title": "Hello"}), LABEL)
    assert isinstance(mutation, CreateNote)
    assert mutation.title == "Hello"
    assert action_type(mutation) == TransactionType.CREATE


def test_decode_without_matching_label_returns_none():
    assert decode(_entries({"action": "CREATE", "title": "Hello"}, label=1), LABEL) is None
    assert decode([], LABEL) is None


def test_non_numeric_label_never_matches():
    entries = [MetadataEntry(label="notes", json_metadata={"action": "CREATE", "title": "x"})]
    assert decode(entries, LABEL) is None


@pytest.mark.parametrize(
    "action,expected",
    [
        ("create", TransactionType.CREATE),
        ("Add", TransactionType.CREATE),
        ("NEW", TransactionType.CREATE),
        ("update", TransactionType.UPDATE),
        ("edit", TransactionType.UPDATE),
        ("Modify", TransactionType.UPDATE),
        ("delete", TransactionType.DELETE),
        ("REMOVE", TransactionType.DELETE),
        (" delete ", TransactionType.DELETE),
    ],
)
def test_action_synonyms(action, expected):
    assert parse_action({"action": action}) == expected


def test_unknown_action_returns_none():
    assert parse_action({"action": "ARCHIVE"}) is None
    assert decode_payload({"action": "ARCHIVE", "title": "x"}) is None
    assert decode_payload({"action": 5, "title": "x"}) is None
    assert decode_payload({"title": "no action"}) is None


def test_operation_key_is_accepted():
    mutation = decode_payload({"operation": "UPDATE", "noteId": 3, "title": "New"})
    assert isinstance(mutation, UpdateNote)
    assert mutation.note_id == 3


def test_action_wins_over_operation():
    assert parse_action({"action": "DELETE", "operation": "CREATE"}) == TransactionType.DELETE


def test_payload_must_be_an_object():
    assert decode_payload(["CREATE", "title"]) is None
    assert decode_payload("CREATE") is None
    assert decode_payload(None) is None


def test_create_requires_non_blank_title():
    assert decode_payload({"action": "CREATE"}) is None
    assert decode_payload({"action": "CREATE", "title": "   "}) is None


def test_create_reads_optional_fields():
    mutation = decode_payload(
        {
            "action": "CREATE",
            "title": "Trip",
            "content": "Pack bags",
            "category": "travel",
            "isPinned": True,
            "walletAddress": "addr_test1xyz",
        }
    )
    assert mutation == CreateNote(
        title="Trip",
        content="Pack bags",
        category="travel",
        is_pinned=True,
        wallet_address="addr_test1xyz",
    )


def test_chunked_strings_are_joined():
    mutation = decode_payload(
        {"action": "CREATE", "title": ["Long ", "title"], "content": ["a" * 64, "b" * 10]}
    )
    assert mutation.title == "Long title"
    assert mutation.content == "a" * 64 + "b" * 10


def test_wrong_field_type_rejects_payload():
    assert decode_payload({"action": "CREATE", "title": 42}) is None
    assert decode_payload({"action": "CREATE", "title": "x", "content": {"nested": 1}}) is None
    assert decode_payload({"action": "CREATE", "title": "x", "isPinned": "maybe"}) is None


def test_is_pinned_accepts_string_booleans():
    assert decode_payload({"action": "CREATE", "title": "x", "isPinned": "true"}).is_pinned is True
    assert decode_payload({"action": "CREATE", "title": "x", "isPinned": "FALSE"}).is_pinned is False


def test_update_requires_note_id():
    assert decode_payload({"action": "UPDATE", "title": "x"}) is None


def test_update_is_partial():
    mutation = decode_payload({"action": "EDIT", "noteId": 7, "content": "only content"})
    assert mutation == UpdateNote(note_id=7, content="only content")
    assert mutation.title is None
    assert mutation.is_pinned is None


@pytest.mark.parametrize("note_id,expected", [(7, 7), ("7", 7), (" 12 ", 12)])
def test_note_id_accepts_int_and_numeric_string(note_id, expected):
    mutation = decode_payload({"action": "DELETE", "noteId": note_id})
    assert mutation == DeleteNote(note_id=expected)


@pytest.mark.parametrize("note_id", [True, False, "abc", 1.5, 0, -3, None, [7]])
def test_bad_note_ids_are_rejected(note_id):
    assert decode_payload({"action": "DELETE", "noteId": note_id}) is None


def test_delete_ignores_other_fields():
    mutation = decode_payload({"action": "REMOVE", "noteId": 9, "title": "ignored"})
    assert isinstance(mutation, DeleteNote)
    assert mutation.kind == "DELETE"
