#!/usr/bin/python3
"""Tests for the discovery event model and attachment classification"""

import logging

from ndef_decoder import NDEFRecord, NdefMessage, TNF_MIME_MEDIA, TNF_WELL_KNOWN
from nfc_event import (
    ACTION_NDEF_DISCOVERED,
    ACTION_TAG_DISCOVERED,
    EXTRA_ID,
    EXTRA_NDEF_MESSAGES,
    EXTRA_TAG,
    MessageAttachment,
    OpaqueAttachment,
    SequenceAttachment,
    TagInfo,
    classify_attachment,
    describe_value,
    event_from_tag,
    guess_content_type,
    type_name,
)

logger = logging.getLogger(__name__)

UID = bytes.fromhex("04123456789abc")


class Unprintable:
    def __str__(self):
        raise RuntimeError("no rendering")


def text_message(text: str = "hello") -> NdefMessage:
    return NdefMessage.of(NDEFRecord(TNF_WELL_KNOWN, b"T", text.encode()))


def test_list_and_tuple_are_sequences():
    message = text_message()
    attachment = classify_attachment([message, 3])
    assert attachment == SequenceAttachment((message, 3))
    assert isinstance(classify_attachment(()), SequenceAttachment)


def test_single_message_in_list_is_still_a_sequence():
    assert isinstance(classify_attachment([text_message()]), SequenceAttachment)


def test_bare_message():
    message = text_message()
    assert classify_attachment(message) == MessageAttachment(message)


def test_text_bytes_and_mappings_are_opaque():
    assert classify_attachment("abc") == OpaqueAttachment("str", "abc")
    assert classify_attachment(b"\x01") == OpaqueAttachment("bytes", str(b"\x01"))
    assert classify_attachment({"a": 1}) == OpaqueAttachment("dict", "{'a': 1}")
    assert classify_attachment(None) == OpaqueAttachment("NoneType", "None")


def test_describe_value_never_raises():
    value = Unprintable()
    name, rendering = describe_value(value)
    assert name == type_name(value)
    assert name.endswith(".Unprintable")
    assert rendering == f"<unprintable {name}>"


def test_type_name_qualifies_non_builtins():
    assert type_name(42) == "int"
    assert type_name(TagInfo(uid="AB")) == "nfc_event.TagInfo"


def test_guess_content_type():
    assert guess_content_type(text_message()) == "text/plain"
    mime = NdefMessage.of(NDEFRecord(TNF_MIME_MEDIA, b"Application/JSON", b"{}"))
    assert guess_content_type(mime) == "application/json"
    uri = NdefMessage.of(NDEFRecord(TNF_WELL_KNOWN, b"U", b"\x04example.com"))
    assert guess_content_type(uri) is None
    assert guess_content_type(NdefMessage()) is None


def test_event_from_tag_with_ndef():
    tag = TagInfo(uid=UID.hex().upper(), atr="3B 8F")
    message = text_message()

    event = event_from_tag(UID, message.to_bytes(), tag)

    assert event.action == ACTION_NDEF_DISCOVERED
    assert event.content_type == "text/plain"
    assert event.extras is not None
    assert list(event.extras) == [EXTRA_ID, EXTRA_TAG, EXTRA_NDEF_MESSAGES]
    assert event.extras[EXTRA_ID] == UID
    assert event.extras[EXTRA_TAG] is tag
    (decoded,) = event.extras[EXTRA_NDEF_MESSAGES]
    assert decoded.records[0].payload == b"hello"


def test_event_from_tag_without_ndef():
    event = event_from_tag(UID, None)
    assert event.action == ACTION_TAG_DISCOVERED
    assert event.content_type is None
    assert event.extras == {EXTRA_ID: UID}


def test_event_from_tag_with_undecodable_ndef(caplog):
    with caplog.at_level(logging.WARNING, logger="nfc_event"):
        event = event_from_tag(UID, b"\xd1\x01\x10U")

    assert event.action == ACTION_TAG_DISCOVERED
    assert event.extras is not None
    assert EXTRA_NDEF_MESSAGES not in event.extras
    assert "Undecodable NDEF data" in caplog.text
