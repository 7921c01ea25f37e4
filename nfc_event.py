#!/usr/bin/python3
"""NFC discovery event model and attachment classification"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ndef_decoder import (
    NDEFDecodeError,
    NdefMessage,
    TNF_MIME_MEDIA,
    TNF_WELL_KNOWN,
)

ACTION_NDEF_DISCOVERED = "android.nfc.action.NDEF_DISCOVERED"
ACTION_TECH_DISCOVERED = "android.nfc.action.TECH_DISCOVERED"
ACTION_TAG_DISCOVERED = "android.nfc.action.TAG_DISCOVERED"

EXTRA_NDEF_MESSAGES = "android.nfc.extra.NDEF_MESSAGES"
EXTRA_ID = "android.nfc.extra.ID"
EXTRA_TAG = "android.nfc.extra.TAG"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NfcEvent:
    """One tag discovery notification as delivered by the host"""

    action: Optional[str]
    content_type: Optional[str] = None
    extras: Optional[Mapping[str, Any]] = None


@dataclass(frozen=True)
class TagInfo:
    """Platform handle for the discovered tag"""

    uid: str
    atr: str = ""
    technology: str = "NfcA"

    def __str__(self) -> str:
        return f"TAG: Tech [{self.technology}] uid={self.uid} atr={self.atr}"


@dataclass(frozen=True)
class SequenceAttachment:
    elements: Tuple[Any, ...]


@dataclass(frozen=True)
class MessageAttachment:
    message: NdefMessage


@dataclass(frozen=True)
class OpaqueAttachment:
    type_name: str
    rendering: str


Attachment = Union[SequenceAttachment, MessageAttachment, OpaqueAttachment]


def type_name(value: Any) -> str:
    """Qualified runtime type name; builtins are left unqualified"""
    cls = type(value)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def describe_value(value: Any) -> Tuple[str, str]:
    """(type name, string rendering) for any value, never raising"""
    name = type_name(value)
    try:
        rendering = str(value)
    except Exception:  # pylint: disable=broad-exception-caught
        rendering = f"<unprintable {name}>"
    return name, rendering


def classify_attachment(value: Any) -> Attachment:
    """Map a raw extras value onto its attachment variant.

    Sequences are checked first so that a list holding a single message is
    never mistaken for a bare message. Text, bytes and mappings are opaque.
    """
    if isinstance(value, (list, tuple)):
        return SequenceAttachment(tuple(value))
    if isinstance(value, NdefMessage):
        return MessageAttachment(value)
    name, rendering = describe_value(value)
    return OpaqueAttachment(name, rendering)


def guess_content_type(message: NdefMessage) -> Optional[str]:
    """MIME type the platform would dispatch this message under"""
    if not message.records:
        return None
    first = message.records[0]
    if first.tnf == TNF_MIME_MEDIA:
        return first.type_str.lower()
    if first.tnf == TNF_WELL_KNOWN and first.record_type == b"T":
        return "text/plain"
    return None


def event_from_tag(
    uid: bytes, ndef_data: Optional[bytes], tag_info: Optional[TagInfo] = None
) -> NfcEvent:
    """Build the discovery event for a tag read from a reader"""
    extras: Dict[str, Any] = {EXTRA_ID: bytes(uid)}
    if tag_info is not None:
        extras[EXTRA_TAG] = tag_info

    message = None
    if ndef_data:
        try:
            message = NdefMessage.from_bytes(ndef_data)
        except NDEFDecodeError as e:
            logger.warning("Undecodable NDEF data (%d bytes): %s", len(ndef_data), e)
            logger.debug("Raw NDEF data: %s", ndef_data.hex())

    if message is None or not message.records:
        return NfcEvent(action=ACTION_TAG_DISCOVERED, extras=extras)

    extras[EXTRA_NDEF_MESSAGES] = [message]
    return NfcEvent(
        action=ACTION_NDEF_DISCOVERED,
        content_type=guess_content_type(message),
        extras=extras,
    )
