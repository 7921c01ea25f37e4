#!/usr/bin/env python3
"""
T2 NFC Card Emulator using virtualsmartcard.
Serves an NDEF message from a virtual Type 2 tag so the intent dump can be
exercised without physical cards.
"""

import logging
import os
import sys
from typing import Dict, List, Optional

from virtualsmartcard.VirtualSmartcard import SmartcardOS, VirtualICC

from ndef_decoder import NDEFRecord, NdefMessage, TNF_EXTERNAL_TYPE, TNF_WELL_KNOWN

VICC_HOST = os.getenv("VICC_HOST", "localhost")
VICC_PORT = int(os.getenv("VICC_PORT", "35963"))

TAG_UID = bytes([0x04, 0x12, 0x34, 0x56, 0x78, 0x9A, 0xBC])
# Simplified ATR for an NFC Type 2 card behind a PC/SC reader
TAG_ATR = bytes.fromhex("3B8F8001804F0CA0000003060300010000000068")

logger = logging.getLogger(__name__)


def build_demo_message() -> NdefMessage:
    """A text record followed by a record whose payload is not UTF-8"""
    return NdefMessage.of(
        NDEFRecord(tnf=TNF_WELL_KNOWN, record_type=b"T", payload=b"hello"),
        NDEFRecord(tnf=TNF_EXTERNAL_TYPE, record_type=b"U", payload=b"\x04\xff\xfe"),
    )


def build_t2_pages(ndef_data: bytes, uid: bytes = TAG_UID) -> Dict[int, List[int]]:
    """Lay out UID, capability container and NDEF TLV as T2 pages"""
    pages: Dict[int, List[int]] = {}

    # Pages 0-1: UID with check bytes zeroed
    pages[0] = list(uid[:3]) + [0x00]
    pages[1] = list(uid[3:7])
    pages[2] = [0x00, 0x00, 0x00, 0x00]  # Internal/lock bytes
    pages[3] = [0xE1, 0x10, 0x12, 0x00]  # CC: NDEF v1.0, 144 byte data area

    if ndef_data:
        if len(ndef_data) < 0xFF:
            tlv = bytes([0x03, len(ndef_data)]) + ndef_data
        else:
            tlv = bytes([0x03, 0xFF]) + len(ndef_data).to_bytes(2, "big") + ndef_data
    else:
        tlv = b""
    tlv += bytes([0xFE])

    for offset in range(0, len(tlv), 4):
        page_data = list(tlv[offset : offset + 4])
        page_data.extend([0x00] * (4 - len(page_data)))
        pages[4 + offset // 4] = page_data

    return pages


class T2NFCCardOS(SmartcardOS):
    """SmartcardOS implementation for T2 NFC card emulation with NDEF data."""

    def __init__(self, ndef_data: Optional[bytes] = None):
        self.ndef_data = ndef_data or b""
        self.pages = build_t2_pages(self.ndef_data)

    def getATR(self):  # type: ignore
        return TAG_ATR

    def execute(self, msg):  # type: ignore
        """Process APDU commands for T2 NFC card."""
        if len(msg) < 4:
            return bytes([0x6F, 0x00])  # Wrong length

        cla, ins, _p1, page = msg[:4]
        length = msg[4] if len(msg) > 4 and msg[4] > 0 else 4

        # T2 READ BINARY through the PC/SC pseudo-APDU (FF B0)
        if cla == 0xFF and ins == 0xB0:
            page_data = list(self.pages.get(page, []))[:length]
            page_data.extend([0x00] * (length - len(page_data)))
            return bytes(page_data) + bytes([0x90, 0x00])

        if cla == 0x00 and ins == 0xA4:
            return bytes([0x90, 0x00])  # SELECT

        return bytes([0x6D, 0x00])  # Instruction not supported


def main():
    """Main entry point for T2 NFC card emulator."""
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if len(sys.argv) > 1:
        # NDEF message provided as hex string
        try:
            ndef_data = bytes.fromhex(sys.argv[1])
        except ValueError:
            logger.error("Invalid hex string: %s", sys.argv[1])
            return 1
    else:
        ndef_data = build_demo_message().to_bytes()

    logger.info("Starting T2 NFC card emulator with NDEF data: %s", ndef_data.hex())

    try:
        vicc = VirtualICC("", "iso7816", VICC_HOST, VICC_PORT)
        vicc.os = T2NFCCardOS(ndef_data)
        logger.info("T2 NFC card emulator started. Press Ctrl+C to stop.")
        vicc.run()
    except KeyboardInterrupt:
        logger.info("Stopping T2 NFC card emulator...")
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("VICC error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
