"""Decode labelled transaction metadata into note mutations.

Ledger metadata is written by third parties and is never trusted: every
malformed shape decodes to None instead of raising.
"""

import logging
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from ..models.ledger import MetadataEntry
from ..models.transaction import TransactionType

logger = logging.getLogger(__name__)

ACTION_SYNONYMS: dict[str, TransactionType] = {
    "CREATE": TransactionType.CREATE,
    "ADD": TransactionType.CREATE,
    "NEW": TransactionType.CREATE,
    "UPDATE": TransactionType.UPDATE,
    "EDIT": TransactionType.UPDATE,
    "MODIFY": TransactionType.UPDATE,
    "DELETE": TransactionType.DELETE,
    "REMOVE": TransactionType.DELETE,
}


class CreateNote(BaseModel):
    kind: Literal["CREATE"] = "CREATE"
    title: str
    content: Optional[str] = None
    category: Optional[str] = None
    is_pinned: Optional[bool] = None
    wallet_address: Optional[str] = None


class UpdateNote(BaseModel):
    """Partial update: fields left as None are not touched."""

    kind: Literal["UPDATE"] = "UPDATE"
    note_id: int
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    is_pinned: Optional[bool] = None
    wallet_address: Optional[str] = None


class DeleteNote(BaseModel):
    kind: Literal["DELETE"] = "DELETE"
    note_id: int
    wallet_address: Optional[str] = None


NoteMutation = Annotated[Union[CreateNote, UpdateNote, DeleteNote], Field(discriminator="kind")]


def action_type(mutation: NoteMutation) -> TransactionType:
    return TransactionType(mutation.kind)


def parse_action(payload: Any) -> Optional[TransactionType]:
    """Resolve the payload's action through the synonym table.

    ``action`` wins over ``operation``; the web client writes the latter.
    """
    if not isinstance(payload, dict):
        return None
    raw = payload.get("action")
    if raw is None:
        raw = payload.get("operation")
    if not isinstance(raw, str):
        return None
    return ACTION_SYNONYMS.get(raw.strip().upper())


def select_entry(entries: list[MetadataEntry], target_label: Optional[int]) -> Optional[MetadataEntry]:
    for entry in entries or []:
        if entry.has_label(target_label):
            return entry
    return None


def decode(entries: list[MetadataEntry], target_label: Optional[int]) -> Optional[NoteMutation]:
    """Pick the entry carrying ``target_label`` and decode its payload.

    Returns:
        The decoded mutation, or None when no entry matches or the payload is unusable
    """
    entry = select_entry(entries, target_label)
    if entry is None:
        return None
    return decode_payload(entry.json_metadata)


def decode_payload(payload: Any) -> Optional[NoteMutation]:
    if not isinstance(payload, dict):
        logger.debug("Metadata payload is not an object")
        return None

    kind = parse_action(payload)
    if kind is None:
        logger.debug(f"Unknown or missing action in metadata: {payload.get('action', payload.get('operation'))!r}")
        return None

    try:
        wallet = _text(payload.get("walletAddress"))
        if kind == TransactionType.CREATE:
            title = _text(payload.get("title"))
            if title is None or not title.strip():
                logger.debug("CREATE metadata without a title")
                return None
            return CreateNote(
                title=title,
                content=_text(payload.get("content")),
                category=_text(payload.get("category")),
                is_pinned=_flag(payload.get("isPinned")),
                wallet_address=wallet,
            )

        note_id = _note_id(payload.get("noteId"))
        if note_id is None:
            logger.debug(f"{kind.value} metadata without a usable noteId")
            return None
        if kind == TransactionType.UPDATE:
            return UpdateNote(
                note_id=note_id,
                title=_text(payload.get("title")),
                content=_text(payload.get("content")),
                category=_text(payload.get("category")),
                is_pinned=_flag(payload.get("isPinned")),
                wallet_address=wallet,
            )
        return DeleteNote(note_id=note_id, wallet_address=wallet)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError too
        logger.debug(f"Malformed {kind.value} metadata: {e}")
        return None


def _text(value: Any) -> Optional[str]:
    """Read a metadata string, joining 64-byte chunk lists back together."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(part, str) for part in value):
        return "".join(value)
    raise ValueError(f"expected a string, got {type(value).__name__}")


def _flag(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"expected a boolean, got {value!r}")


def _note_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        note_id = int(value.strip())
        return note_id if note_id > 0 else None
    return None
