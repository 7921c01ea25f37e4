#!/usr/bin/python3
"""NDEF codec: records, messages and their diagnostic rendering"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

BINARY_MARKER = "<binary>"

TNF_EMPTY = 0x00
TNF_WELL_KNOWN = 0x01
TNF_MIME_MEDIA = 0x02
TNF_ABSOLUTE_URI = 0x03
TNF_EXTERNAL_TYPE = 0x04
TNF_UNKNOWN = 0x05
TNF_UNCHANGED = 0x06
TNF_RESERVED = 0x07


class NDEFDecodeError(ValueError):
    """Raised when NDEF bytes end before a record is complete"""


@dataclass(frozen=True)
class NDEFRecord:
    """Strongly typed NDEF record representation"""

    tnf: int
    record_type: bytes
    payload: bytes
    record_id: bytes = b""
    message_begin: bool = False
    last_record: bool = False
    chunked: bool = False
    short_record: bool = False

    @property
    def tnf_name(self) -> str:
        return get_tnf_name(self.tnf)

    @property
    def type_str(self) -> str:
        return render_type(self.record_type)

    @property
    def has_id(self) -> bool:
        return bool(self.record_id)

    @property
    def payload_text(self) -> Optional[str]:
        """Payload as UTF-8 text, or None if it is not valid UTF-8"""
        try:
            return self.payload.decode("utf-8")
        except UnicodeDecodeError:
            return None

    def encode(self, message_begin: bool, message_end: bool) -> bytes:
        """Encode this record, setting the MB/ME flags as given"""
        short = len(self.payload) < 0x100
        header = self.tnf & 0x07
        if message_begin:
            header |= 0x80
        if message_end:
            header |= 0x40
        if short:
            header |= 0x10
        if self.record_id:
            header |= 0x08

        out = bytearray([header, len(self.record_type)])
        if short:
            out.append(len(self.payload))
        else:
            out += len(self.payload).to_bytes(4, "big")
        if self.record_id:
            out.append(len(self.record_id))
        out += self.record_type
        out += self.record_id
        out += self.payload
        return bytes(out)


@dataclass(frozen=True)
class NdefMessage:
    """Ordered container of NDEF records"""

    records: Tuple[NDEFRecord, ...] = field(default_factory=tuple)

    @classmethod
    def from_bytes(cls, data: bytes) -> "NdefMessage":
        return cls(tuple(decode_records(data)))

    @classmethod
    def of(cls, *records: NDEFRecord) -> "NdefMessage":
        return cls(tuple(records))

    def to_bytes(self) -> bytes:
        last = len(self.records) - 1
        return b"".join(
            record.encode(i == 0, i == last) for i, record in enumerate(self.records)
        )

    def __len__(self) -> int:
        return len(self.records)


def get_tnf_name(tnf: int) -> str:
    """Get human-readable TNF name"""
    tnf_names: Dict[int, str] = {
        TNF_EMPTY: "Empty",
        TNF_WELL_KNOWN: "NFC Forum well-known type",
        TNF_MIME_MEDIA: "Media type (RFC 2046)",
        TNF_ABSOLUTE_URI: "Absolute URI (RFC 3986)",
        TNF_EXTERNAL_TYPE: "NFC Forum external type",
        TNF_UNKNOWN: "Unknown",
        TNF_UNCHANGED: "Unchanged",
        TNF_RESERVED: "Reserved",
    }
    return tnf_names.get(tnf, f"Unknown ({tnf})")


def render_payload(payload: bytes) -> str:
    """Payload as UTF-8 text, or the binary marker when it does not decode"""
    try:
        return bytes(payload).decode("utf-8")
    except (UnicodeDecodeError, TypeError):
        return BINARY_MARKER


def render_type(record_type: bytes) -> str:
    """Best-effort text rendering of a record type field"""
    try:
        return bytes(record_type).decode("utf-8", errors="replace")
    except TypeError:
        return repr(record_type)


def _take(data: bytes, offset: int, length: int, what: str) -> bytes:
    if offset + length > len(data):
        raise NDEFDecodeError(
            f"truncated {what}: need {length} bytes at offset {offset}, "
            f"have {len(data) - offset}"
        )
    return data[offset : offset + length]


def decode_record(data: bytes, offset: int) -> Tuple[Optional[NDEFRecord], int]:
    """Decode a single NDEF record, returns (record, new_offset)"""
    if offset >= len(data):
        return None, offset

    # Read the TNF and flags byte
    tnf_flags = data[offset]
    offset += 1

    mb = (tnf_flags & 0x80) != 0  # Message Begin
    me = (tnf_flags & 0x40) != 0  # Message End
    cf = (tnf_flags & 0x20) != 0  # Chunk Flag
    sr = (tnf_flags & 0x10) != 0  # Short Record
    il = (tnf_flags & 0x08) != 0  # ID Length present
    tnf = tnf_flags & 0x07

    type_length = _take(data, offset, 1, "type length")[0]
    offset += 1

    # Payload Length is 1 or 4 bytes depending on SR flag
    if sr:
        payload_length = _take(data, offset, 1, "payload length")[0]
        offset += 1
    else:
        payload_length = int.from_bytes(
            _take(data, offset, 4, "payload length"), "big"
        )
        offset += 4

    id_length = 0
    if il:
        id_length = _take(data, offset, 1, "id length")[0]
        offset += 1

    record_type = _take(data, offset, type_length, "type")
    offset += type_length

    record_id = _take(data, offset, id_length, "id")
    offset += id_length

    payload = _take(data, offset, payload_length, "payload")
    offset += payload_length

    record = NDEFRecord(
        tnf=tnf,
        record_type=bytes(record_type),
        payload=bytes(payload),
        record_id=bytes(record_id),
        message_begin=mb,
        last_record=me,
        chunked=cf,
        short_record=sr,
    )

    return record, offset


def decode_records(data: bytes) -> List[NDEFRecord]:
    """Decode all NDEF records in the data"""
    records: List[NDEFRecord] = []
    offset = 0

    while offset < len(data):
        record, offset = decode_record(data, offset)
        if record is None:
            break
        records.append(record)

        # If this was the last record (ME flag set), stop
        if record.last_record:
            break

    return records
