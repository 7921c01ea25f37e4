#!/usr/bin/python3
"""Dump NFC discovery events for tags presented to a PC/SC reader"""

import sys
import signal
import atexit
import time
import threading
import logging
import os
from typing import List, Optional, Set, Tuple

from smartcard.CardConnection import CardConnection
from smartcard.CardMonitoring import CardMonitor, CardObserver
from smartcard.util import toHexString
from smartcard.Exceptions import NoCardException
from smartcard.System import readers

from intent_inspector import DEFAULT_TAG, InspectionReport, IntentInspector
from mqtt_handler import MQTTHandler
from nfc_event import EXTRA_ID, NfcEvent, TagInfo, event_from_tag
import t2_ndef_reader

# Delivery paths: tag already present when the reader starts, or presented later
SOURCE_LAUNCH = "onCreate"
SOURCE_RUNNING = "onNewIntent"

NFC_DUMP_TAG = os.getenv("NFC_DUMP_TAG", DEFAULT_TAG)

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

logger = logging.getLogger(__name__)

# Global variables for resource cleanup
_connection: Optional[CardConnection] = None
_card_monitor: Optional[CardMonitor] = None


def check_pcsc_system() -> Optional[List[Tuple[str, str]]]:
    """Check PC/SC readers, returns (reader, ATR) of cards already present or None"""
    try:
        logger.info("Checking PC/SC system status...")

        available_readers = readers()
        logger.info("Available readers: %d", len(available_readers))

        if not available_readers:
            logger.error("No PC/SC readers found!")
            return None

        present: List[Tuple[str, str]] = []
        for i, reader in enumerate(available_readers):
            logger.info("Reader %d: %s", i, reader)

            try:
                connection = reader.createConnection()
                connection.connect()
                atr = toHexString(connection.getATR())
                logger.info("Reader %d has a card present", i)
                logger.debug("ATR: %s", atr)
                present.append((str(reader), atr))
                connection.disconnect()
            except NoCardException:
                logger.info("Reader %d has no card", i)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning("Reader %d error: %s", i, e)

        return present

    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("PC/SC system check failed: %s", e)
        logger.debug("Exception details:", exc_info=True)
        return None


def read_event(connection, atr: str) -> tuple[Optional[NfcEvent], Optional[str]]:
    """Read a Type 2 tag into a discovery event, returns (event, error)"""
    uid, error = t2_ndef_reader.read_uid(connection)
    if error or uid is None:
        return None, error

    ndef_data, error = t2_ndef_reader.read_ndef(connection)
    if error:
        # Not NDEF formatted; still a discovered tag
        logger.info("No NDEF data on tag %s: %s", uid.hex(), error)
        ndef_data = None

    tag_info = TagInfo(uid=uid.hex().upper(), atr=atr)
    return event_from_tag(uid, ndef_data, tag_info), None


# Since this is an observer class, it doesn't need public methods
# pylint: disable=too-few-public-methods
class NFCCardObserver(CardObserver):
    """Observer that dumps an NFC event for every inserted card"""

    def __init__(
        self,
        inspector: Optional[IntentInspector] = None,
        mqtt_handler: Optional[MQTTHandler] = None,
        launch_cards: Optional[List[Tuple[str, str]]] = None,
    ):
        self.inspector = inspector or IntentInspector(tag=NFC_DUMP_TAG)
        self.mqtt_handler = mqtt_handler
        self.cards_processed = 0
        self.processing_lock = threading.Lock()
        self.last_report: Optional[InspectionReport] = None
        self._launch_cards: Set[Tuple[str, str]] = set(launch_cards or [])
        logger.info("NFCCardObserver initialized")

    def update(self, observable, handlers):
        """Called when card events occur"""
        try:
            (addedcards, removedcards) = handlers
            logger.debug(
                "Added cards: %d, Removed cards: %d", len(addedcards), len(removedcards)
            )

            for card in addedcards:
                atr = toHexString(card.atr)
                logger.info("Card inserted: %s", atr)
                threading.Thread(
                    target=self._process_card,
                    args=(card, self._source_for(str(card.reader), atr)),
                    daemon=True,
                ).start()

            for card in removedcards:
                logger.info("Card removed: %s", toHexString(card.atr))
                if self.mqtt_handler:
                    self.mqtt_handler.publish_report(None)

        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error in observer update: %s", e)
            logger.debug("Exception details:", exc_info=True)

    def _source_for(self, reader: str, atr: str) -> str:
        # Cards seen by the startup check are the ones that launched us;
        # Type 2 tags share one ATR, so the reader tells them apart
        key = (reader, atr)
        if key in self._launch_cards:
            self._launch_cards.discard(key)
            return SOURCE_LAUNCH
        return SOURCE_RUNNING

    def deliver(self, source: str, event: NfcEvent) -> Optional[InspectionReport]:
        """Hand one event to the inspector; never raises into the reader loop"""
        try:
            report = self.inspector.inspect(source, event)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error dumping intent %s: %s", source, e)
            logger.debug("Exception details:", exc_info=True)
            return None

        self.last_report = report
        if report.error:
            logger.error("Intent dump (%s) failed: %s", source, report.error)
        elif report.failures:
            logger.warning(
                "Intent dump (%s) skipped %d extras: %s",
                source,
                len(report.failures),
                ", ".join(result.name for result in report.failures),
            )
        return report

    def _process_card(self, card, source: str):
        """Read a card and deliver its event; runs in a separate thread"""
        global _connection  # pylint: disable=global-statement

        with self.processing_lock:
            try:
                connection = card.createConnection()
                _connection = connection
                _connection.connect()
                logger.info("Connected to card")

                atr = toHexString(card.atr)
                event, error = read_event(_connection, atr)
                if error or event is None:
                    logger.error("Error reading tag: %s", error)
                    return

                report = self.deliver(source, event)
                if report is not None and self.mqtt_handler:
                    uid = event.extras.get(EXTRA_ID) if event.extras else None
                    self.mqtt_handler.publish_report(report, uid.hex() if uid else None)

                self.cards_processed += 1
                logger.info(
                    "--- Card read completed --- (Total: %d)", self.cards_processed
                )

            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Error processing card: %s", e)

            finally:
                if _connection:
                    try:
                        _connection.disconnect()
                        logger.debug("Card processing finished")
                    except Exception as e:  # pylint: disable=broad-exception-caught
                        logger.warning("Error disconnecting card: %s", e)
                    finally:
                        _connection = None


def cleanup_resources() -> None:
    """Cleanup function to be called on exit"""
    global _connection, _card_monitor  # pylint: disable=global-statement

    if _card_monitor:
        try:
            # Copy list to avoid modification during iteration
            for observer in _card_monitor.observers[:]:
                _card_monitor.deleteObserver(observer)
            logger.info("Card monitor stopped")
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning("Error stopping card monitor: %s", e)
        finally:
            _card_monitor = None

    if _connection:
        try:
            _connection.disconnect()
            logger.info("Card connection closed")
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning("Error closing card connection: %s", e)
        finally:
            _connection = None


def signal_handler(signum: int, _frame) -> None:
    """Handle termination signals"""
    signal_name = (
        "SIGTERM"
        if signum == signal.SIGTERM
        else "SIGINT" if signum == signal.SIGINT else f"signal {signum}"
    )
    logger.info("Received %s, cleaning up...", signal_name)
    cleanup_resources()
    sys.exit(128 + signum)


def setup_signal_handlers() -> None:
    """Setup signal handlers for proper cleanup"""
    # Signal handlers can only be installed from the main thread
    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)
    atexit.register(cleanup_resources)


def main() -> int:
    """Main function - uses observer pattern for card monitoring"""
    global _card_monitor  # pylint: disable=global-statement

    logger.info("NFC intent dump starting up...")

    setup_signal_handlers()

    launch_cards = check_pcsc_system()
    if launch_cards is None:
        logger.error("PC/SC system check failed - cannot continue")
        return 1

    # MQTT is optional - dumps still go to the log without it
    mqtt_handler = MQTTHandler()
    mqtt_handler.setup()

    observer = None
    try:
        observer = NFCCardObserver(
            IntentInspector(tag=NFC_DUMP_TAG), mqtt_handler, launch_cards
        )
        _card_monitor = CardMonitor()
        _card_monitor.addObserver(observer)

        logger.info("Card monitoring started - place a card on the reader")
        logger.info("Press Ctrl+C to stop")

        loop_count = 0
        while True:
            time.sleep(5)
            loop_count += 1
            if loop_count % 12 == 0:
                logger.debug("Still monitoring... (%ds elapsed)", loop_count * 5)

    except KeyboardInterrupt:
        cards_count = observer.cards_processed if observer else 0
        logger.info("Shutting down... Processed %d cards.", cards_count)
        return 0
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("Unexpected error in main loop: %s", e)
        logger.debug("Exception details:", exc_info=True)
        return 1
    finally:
        mqtt_handler.cleanup()


if __name__ == "__main__":
    sys.exit(main())
