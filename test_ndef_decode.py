#!/usr/bin/python3
"""Tests for the NDEF codec and payload rendering"""

import logging
import os

import pytest

from ndef_decoder import (
    BINARY_MARKER,
    NDEFDecodeError,
    NDEFRecord,
    NdefMessage,
    TNF_EXTERNAL_TYPE,
    TNF_MIME_MEDIA,
    TNF_WELL_KNOWN,
    decode_record,
    decode_records,
    get_tnf_name,
    render_payload,
    render_type,
)

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

HA_URL = "www.home-assistant.io/tag/test123"


def ha_uri_record_bytes() -> bytes:
    """URI record as the Home Assistant companion app writes it"""
    return bytes(
        [
            0xD1,  # Header: MB=1, ME=1, CF=0, SR=1, IL=0, TNF=1 (Well-known)
            0x01,  # Type length = 1
            len(HA_URL) + 1,  # Payload length
            0x55,  # Type: 'U' (URI)
            0x04,  # URI identifier: "https://"
        ]
    ) + HA_URL.encode("utf-8")


def test_decode_single_uri_record():
    records = decode_records(ha_uri_record_bytes())

    assert len(records) == 1
    record = records[0]
    assert record.tnf == TNF_WELL_KNOWN
    assert record.tnf_name == "NFC Forum well-known type"
    assert record.record_type == b"U"
    assert record.type_str == "U"
    assert record.payload == b"\x04" + HA_URL.encode()
    assert record.message_begin and record.last_record and record.short_record
    assert not record.chunked
    assert not record.has_id


def test_decode_uri_and_android_application_records():
    message = NdefMessage.of(
        NDEFRecord(TNF_WELL_KNOWN, b"U", b"\x04" + HA_URL.encode()),
        NDEFRecord(
            TNF_EXTERNAL_TYPE, b"android.com:pkg", b"io.homeassistant.companion.android"
        ),
    )

    decoded = NdefMessage.from_bytes(message.to_bytes())

    assert len(decoded) == 2
    assert [r.type_str for r in decoded.records] == ["U", "android.com:pkg"]
    assert decoded.records[0].message_begin and not decoded.records[0].last_record
    assert decoded.records[1].last_record and not decoded.records[1].message_begin
    assert decoded.records[1].payload_text == "io.homeassistant.companion.android"


def test_long_record_uses_four_byte_length():
    payload = b"x" * 300
    encoded = NDEFRecord(TNF_MIME_MEDIA, b"text/plain", payload).encode(True, True)

    # SR flag clear, 4-byte big endian payload length follows the type length
    assert encoded[0] & 0x10 == 0
    assert encoded[2:6] == (300).to_bytes(4, "big")

    record, offset = decode_record(encoded, 0)
    assert record is not None
    assert offset == len(encoded)
    assert record.payload == payload
    assert not record.short_record


def test_record_id_is_decoded():
    encoded = NDEFRecord(TNF_WELL_KNOWN, b"T", b"\x02enhi", record_id=b"r1").encode(
        True, True
    )
    assert encoded[0] & 0x08

    (record,) = decode_records(encoded)
    assert record.record_id == b"r1"
    assert record.has_id
    assert record.payload == b"\x02enhi"


def test_decoding_stops_at_message_end():
    data = ha_uri_record_bytes() + b"\x00\x00\xfe"
    assert len(decode_records(data)) == 1


def test_empty_data_is_empty_message():
    assert NdefMessage.from_bytes(b"").records == ()
    assert decode_record(b"", 0) == (None, 0)


@pytest.mark.parametrize("cut", [1, 3, 10])
def test_truncated_data_raises(cut):
    with pytest.raises(NDEFDecodeError):
        decode_records(ha_uri_record_bytes()[:cut])


def test_render_payload_valid_utf8():
    assert render_payload(b"hello") == "hello"
    assert render_payload("héllo wörld ✓".encode("utf-8")) == "héllo wörld ✓"
    assert render_payload(b"") == ""


@pytest.mark.parametrize(
    "payload",
    [
        b"\x80",  # lone continuation byte
        b"\xe2\x82",  # truncated three byte sequence
        b"ok\xff",
        b"\x04\xff\xfe",
    ],
)
def test_render_payload_invalid_utf8_is_binary(payload):
    assert render_payload(payload) == BINARY_MARKER


def test_render_payload_non_bytes_is_binary():
    assert render_payload(None) == BINARY_MARKER  # type: ignore[arg-type]


def test_render_type_is_best_effort():
    assert render_type(b"android.com:pkg") == "android.com:pkg"
    assert render_type(b"T\xff") == "T�"
    assert render_type(None) == "None"  # type: ignore[arg-type]


def test_payload_text_property():
    assert NDEFRecord(TNF_WELL_KNOWN, b"T", b"hi").payload_text == "hi"
    assert NDEFRecord(TNF_WELL_KNOWN, b"T", b"\xc3").payload_text is None


def test_tnf_names():
    assert get_tnf_name(0) == "Empty"
    assert get_tnf_name(4) == "NFC Forum external type"
    assert get_tnf_name(7) == "Reserved"
    assert get_tnf_name(9) == "Unknown (9)"
