#!/usr/bin/python3
"""Read UID and NDEF bytes from NFC Forum Type 2 tags over PC/SC"""

import logging
from typing import List, Optional, Tuple

from smartcard.CardConnection import CardConnection

# Logic taken mostly from:
# https://github.com/Giraut/pcsc-ndef/blob/master/pcsc_ndef.py

CC_MAGIC = 0xE1
NDEF_TLV = 0x03
TERMINATOR_TLV = 0xFE
INS_READ = 0xB0
SW1_OK = 0x90
SW2_OK = 0x00
PAGE_SIZE = 4

logger = logging.getLogger(__name__)


def read_page(
    connection: CardConnection, page: int
) -> Tuple[Optional[List[int]], Optional[str]]:
    """Read one 4-byte page, returns (data, error)"""
    response, sw1, sw2 = connection.transmit([0xFF, INS_READ, 0x00, page, PAGE_SIZE])
    if sw1 != SW1_OK or sw2 != SW2_OK:
        return None, f"Page {page} read error: {sw1:02X}{sw2:02X}"
    logger.debug("Page %d: %s", page, bytes(response).hex())
    return list(response), None


def read_uid(connection: CardConnection) -> Tuple[Optional[bytes], Optional[str]]:
    """Read the 7-byte UID from pages 0-1"""
    page0, error = read_page(connection, 0)
    if error or page0 is None:
        return None, f"UID {error}"
    page1, error = read_page(connection, 1)
    if error or page1 is None:
        return None, f"UID {error}"

    # UID0-2 + BCC0 on page 0, UID3-6 on page 1
    return bytes(page0[:3] + page1[:4]), None


def read_ndef(connection: CardConnection) -> Tuple[Optional[bytes], Optional[str]]:
    """Read the NDEF message TLV value, returns (data, error).

    A tag with a valid capability container but no NDEF TLV yields b"".
    """
    cc, error = read_page(connection, 3)
    if error or cc is None:
        return None, f"CC {error}"

    if len(cc) != PAGE_SIZE or cc[0] != CC_MAGIC:
        return None, "Invalid capability container"

    tlv, error = read_page(connection, 4)
    if error or tlv is None:
        return None, f"NDEF TLV {error}"

    if tlv[0] == TERMINATOR_TLV:
        logger.debug("Tag has no NDEF message")
        return b"", None

    if tlv[0] != NDEF_TLV:
        return None, f"Invalid NDEF tag: {tlv[0]:02X}"

    if tlv[1] < 0xFF:
        ndef_len = tlv[1]
        ndef_data = bytes(tlv[2:4][:ndef_len])
    else:
        # 3-byte length form fills the rest of page 4
        ndef_len = (tlv[2] << 8) + tlv[3]
        ndef_data = b""

    page = 5
    while len(ndef_data) < ndef_len:
        data, error = read_page(connection, page)
        if error or data is None:
            return None, error

        bytes_needed = min(PAGE_SIZE, ndef_len - len(ndef_data))
        ndef_data += bytes(data[:bytes_needed])
        page += 1

    logger.debug("Read %d NDEF bytes from %d pages", len(ndef_data), page - 3)
    return ndef_data, None
