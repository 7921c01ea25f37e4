#!/usr/bin/python3
"""Diagnostic dump of NFC discovery events and the NDEF messages they carry"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ndef_decoder import NDEFRecord, NdefMessage, render_payload, render_type
from nfc_event import (
    MessageAttachment,
    NfcEvent,
    SequenceAttachment,
    classify_attachment,
    describe_value,
)

DEFAULT_TAG = "NFC_IntentDump"

KIND_SEQUENCE = "sequence"
KIND_MESSAGE = "message"
KIND_OPAQUE = "opaque"


class LogSink(Protocol):
    """Destination for diagnostic lines"""

    def log(
        self,
        level: int,
        tag: str,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> None: ...


class LoggingSink:
    """Sink that forwards to the standard logging module, one logger per tag"""

    def log(
        self,
        level: int,
        tag: str,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        logging.getLogger(tag).log(level, "%s", message, exc_info=cause)


@dataclass(frozen=True)
class LogEntry:
    """One line written to a sink"""

    level: int
    tag: str
    message: str
    cause: Optional[BaseException] = None

    def format(self) -> str:
        line = f"{logging.getLevelName(self.level)}/{self.tag}: {self.message}"
        if self.cause is not None:
            line += f" ({type(self.cause).__name__}: {self.cause})"
        return line


class RecordingSink:
    """Sink that keeps every entry in memory"""

    def __init__(self):
        self.entries: List[LogEntry] = []

    def log(
        self,
        level: int,
        tag: str,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.entries.append(LogEntry(level, tag, message, cause))

    @property
    def messages(self) -> List[str]:
        return [entry.message for entry in self.entries]

    def lines(self) -> List[str]:
        return [entry.format() for entry in self.entries]

    def clear(self) -> None:
        self.entries.clear()


@dataclass
class AttachmentResult:
    """Outcome of dumping one named attachment"""

    name: str
    kind: Optional[str] = None
    element_count: int = 0
    record_count: int = 0
    record_failures: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.record_failures == 0


@dataclass
class InspectionReport:
    """Everything one inspect() call saw, including contained failures"""

    source: str
    action: Optional[str] = None
    content_type: Optional[str] = None
    attachments: List[AttachmentResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failures(self) -> List[AttachmentResult]:
        return [result for result in self.attachments if result.error is not None]

    @property
    def record_count(self) -> int:
        return sum(result.record_count for result in self.attachments)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _describe_error(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


def _render_scalar(value: Optional[str]) -> str:
    if value is None:
        return "<none>"
    if value == "":
        return "<empty>"
    return str(value)


class IntentInspector:
    """Dumps NFC discovery events through an injected sink.

    Nothing raised while reading an event escapes inspect(): a failing
    attachment is logged as a warning and skipped, a failing event is logged
    as an error. Each call only reads the event it is given.
    """

    def __init__(
        self,
        sink: Optional[LogSink] = None,
        tag: str = DEFAULT_TAG,
        level: int = logging.INFO,
    ):
        self.sink: LogSink = sink if sink is not None else LoggingSink()
        self.tag = tag
        self.level = level

    def _log(self, message: str) -> None:
        self.sink.log(self.level, self.tag, message)

    def inspect(self, source: str, event: NfcEvent) -> InspectionReport:
        """Dump one event; source tells launch-time and re-delivered events apart"""
        report = InspectionReport(source=source)
        try:
            self._log(f"--- NFC Intent dump ({source}) ---")
            report.action = event.action
            report.content_type = event.content_type
            self._log(f"Action: {_render_scalar(report.action)}")
            self._log(f"Type: {_render_scalar(report.content_type)}")

            extras = event.extras
            if extras is None or len(extras) == 0:
                self._log("No extras on intent")
            else:
                for name in list(extras.keys()):
                    report.attachments.append(self._inspect_extra(extras, name))

            self._log(f"--- end NFC Intent dump ({source}) ---")
        except Exception as e:  # pylint: disable=broad-exception-caught
            report.error = _describe_error(e)
            self.sink.log(logging.ERROR, self.tag, f"Error dumping intent {source}", e)
        return report

    def _inspect_extra(self, extras, name: str) -> AttachmentResult:
        try:
            return self.decode_attachment(name, extras[name])
        except Exception as e:  # pylint: disable=broad-exception-caught
            self.sink.log(logging.WARNING, self.tag, f"Failed to read extra '{name}'", e)
            return AttachmentResult(name=name, error=_describe_error(e))

    def decode_attachment(self, name: str, value: Any) -> AttachmentResult:
        """Dump a single attachment value according to its shape"""
        attachment = classify_attachment(value)

        if isinstance(attachment, SequenceAttachment):
            elements = attachment.elements
            result = AttachmentResult(
                name=name, kind=KIND_SEQUENCE, element_count=len(elements)
            )
            self._log(f"Extra[{name}] is sequence length={len(elements)}")
            for i, element in enumerate(elements):
                if isinstance(element, NdefMessage):
                    self._log(f"NdefMessage[{i}]: records={len(element.records)}")
                    result.record_count += len(element.records)
                    result.record_failures += self.decode_records(
                        f"{name}[{i}]", element.records
                    )
                else:
                    element_type, rendering = describe_value(element)
                    self._log(f"  Element[{i}]: {element_type} -> {rendering}")
            return result

        if isinstance(attachment, MessageAttachment):
            records = attachment.message.records
            self._log(f"Extra[{name}] is NdefMessage records={len(records)}")
            return AttachmentResult(
                name=name,
                kind=KIND_MESSAGE,
                record_count=len(records),
                record_failures=self.decode_records(name, records),
            )

        self._log(f"Extra[{name}] ({attachment.type_name}) -> {attachment.rendering}")
        return AttachmentResult(name=name, kind=KIND_OPAQUE)

    def decode_records(self, tag: str, records: Sequence[NDEFRecord]) -> int:
        """Dump each record in order, returns how many could not be dumped"""
        failures = 0
        for r, record in enumerate(records):
            try:
                payload = render_payload(record.payload)
                record_type = render_type(record.record_type)
                self._log(
                    f"  {tag} record[{r}] tnf={record.tnf} "
                    f"type={record_type} payload={payload}"
                )
            except Exception as e:  # pylint: disable=broad-exception-caught
                failures += 1
                self.sink.log(
                    logging.WARNING, self.tag, f"Failed to decode {tag} record[{r}]", e
                )
        return failures
