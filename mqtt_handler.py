#!/usr/bin/python3
"""MQTT publisher for NFC intent dump summaries (Home Assistant discovery)"""

import json
import logging
import os
import time
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion
from paho.mqtt.properties import Properties
from paho.mqtt.reasoncodes import ReasonCode

from intent_inspector import InspectionReport

# MQTT Configuration
MQTT_BROKER = os.getenv("MQTT_BROKER", "localhost")
MQTT_PORT = int(os.getenv("MQTT_PORT", "1883"))
MQTT_USERNAME = os.getenv("MQTT_USERNAME")
MQTT_PASSWORD = os.getenv("MQTT_PASSWORD")
MQTT_CLIENT_ID = os.getenv("MQTT_CLIENT_ID", "nfc_intent_dump")
MQTT_TOPIC_PREFIX = os.getenv(
    "MQTT_TOPIC_PREFIX", "homeassistant/sensor/nfc_intent_dump"
)
MQTT_DISCOVERY_TOPIC = f"{MQTT_TOPIC_PREFIX}/config"
MQTT_STATE_TOPIC = f"{MQTT_TOPIC_PREFIX}/state"

logger = logging.getLogger(__name__)


def build_state(
    report: Optional[InspectionReport], tag_id: Optional[str] = None
) -> Dict[str, Any]:
    """JSON-safe state document for the last dumped event"""
    state: Dict[str, Any] = {
        "tag_id": tag_id,
        "present": report is not None,
        "timestamp": time.time(),
    }
    if report is not None:
        state.update(
            {
                "source": report.source,
                "action": report.action,
                "content_type": report.content_type,
                "records": report.record_count,
                "failed_extras": [result.name for result in report.failures],
                "error": report.error,
                "report": report.to_dict(),
            }
        )
    return state


class MQTTHandler:
    """Publish inspection summaries so they show up next to the device log"""

    def __init__(self):
        self.client: Optional[mqtt.Client] = None
        self.connected = False

    def setup(self) -> bool:
        """Setup MQTT client and publish Home Assistant discovery configuration"""
        if not MQTT_BROKER:
            logger.warning("MQTT_BROKER not configured, skipping MQTT setup")
            return False

        try:
            self.client = mqtt.Client(
                callback_api_version=CallbackAPIVersion.VERSION2,
                client_id=MQTT_CLIENT_ID,
            )

            if MQTT_USERNAME and MQTT_PASSWORD:
                self.client.username_pw_set(MQTT_USERNAME, MQTT_PASSWORD)

            self.client.on_connect = self._on_connect
            self.client.on_disconnect = self._on_disconnect
            self.client.on_publish = self._on_publish

            logger.info("Connecting to MQTT broker: %s:%d", MQTT_BROKER, MQTT_PORT)
            self.client.connect(MQTT_BROKER, MQTT_PORT, 60)

            # Network loop runs in its own thread
            self.client.loop_start()

            return True

        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Failed to setup MQTT: %s", e)
            return False

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: mqtt.ConnectFlags,
        rc: ReasonCode,
        properties: Optional[Properties],
    ) -> None:
        if rc.value == 0:
            self.connected = True
            logger.info("Connected to MQTT broker")
            self._publish_ha_discovery()
            self.publish_report(None)
        else:
            self.connected = False
            logger.error("Failed to connect to MQTT broker, return code %d", rc.value)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: mqtt.DisconnectFlags,
        rc: ReasonCode,
        properties: Optional[Properties],
    ) -> None:
        self.connected = False
        if rc.value != 0:
            logger.warning("Unexpected MQTT disconnection")
        else:
            logger.info("MQTT client disconnected")

    def _on_publish(
        self,
        client: mqtt.Client,
        userdata: Any,
        mid: int,
        reason_code: ReasonCode,
        properties: Properties,
    ) -> None:
        logger.debug("MQTT message published, mid: %d", mid)

    def _publish(self, topic: str, document: Dict[str, Any]) -> bool:
        if not self.client or not self.connected:
            logger.debug("Skipping publish to %s - MQTT not connected", topic)
            return False

        try:
            result = self.client.publish(topic, json.dumps(document), retain=True)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error publishing to %s: %s", topic, e)
            return False

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error("Failed to publish to %s, rc: %d", topic, result.rc)
            return False
        return True

    def _publish_ha_discovery(self):
        discovery_config = {
            "name": "NFC Intent Dump",
            "unique_id": "nfc_intent_dump_last_event",
            "state_topic": MQTT_STATE_TOPIC,
            "value_template": "{{ value_json.action }}",
            "json_attributes_topic": MQTT_STATE_TOPIC,
            "device": {
                "identifiers": ["nfc_intent_dump"],
                "name": "NFC Intent Dump",
                "model": "Python NFC Intent Dump",
                "manufacturer": "Custom",
            },
            "icon": "mdi:nfc-search-variant",
        }
        if self._publish(MQTT_DISCOVERY_TOPIC, discovery_config):
            logger.info("Published Home Assistant discovery configuration")

    def publish_report(
        self, report: Optional[InspectionReport], tag_id: Optional[str] = None
    ) -> bool:
        """Publish the last inspection summary, None meaning no tag present"""
        published = self._publish(MQTT_STATE_TOPIC, build_state(report, tag_id))
        if published:
            logger.info("Published intent dump state: %s", tag_id or "absent")
        return published

    def cleanup(self):
        if self.client:
            try:
                self.client.loop_stop()
                self.client.disconnect()
                logger.info("MQTT client disconnected and cleaned up")
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning("Error cleaning up MQTT: %s", e)
            finally:
                self.client = None
                self.connected = False
