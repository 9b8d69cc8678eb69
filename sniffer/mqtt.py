"""
MQTT publisher for captured trames.
Forwards decoded frames, their highlight spans and the timeline boundaries
to an external renderer over MQTT.
"""
import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)


@dataclass
class MQTTConfig:
    """MQTT broker configuration"""
    broker: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: str = "trame_sniffer"
    keepalive: int = 60

    # Topic configuration
    base_topic: str = "sniffer"
    device_id: str = "esp32_sniffer"

    # QoS and retain
    qos: int = 0
    retain: bool = False


class FramePublisher:
    """Publishes frames, highlight spans and availability to MQTT"""

    def __init__(self, config: MQTTConfig):
        self.config = config
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=config.client_id)

        # Set callbacks
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_publish = self._on_publish

        # Authentication
        if config.username:
            self.client.username_pw_set(config.username, config.password)

        self.connected = False

    @property
    def topic_root(self) -> str:
        return f"{self.config.base_topic}/{self.config.device_id}"

    def connect(self, timeout: float = 10):
        """Connect to MQTT broker"""
        try:
            logger.info(f"Connecting to MQTT broker at {self.config.broker}:{self.config.port}")
            self.client.connect(self.config.broker, self.config.port, self.config.keepalive)
            self.client.loop_start()

            # Wait for connection
            start = time.time()
            while not self.connected and (time.time() - start) < timeout:
                time.sleep(0.1)

            if not self.connected:
                raise ConnectionError("MQTT connection timeout")

            logger.info("MQTT connection established")

        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            raise

    def disconnect(self):
        """Disconnect from MQTT broker"""
        self.client.loop_stop()
        self.client.disconnect()
        logger.info("MQTT disconnected")

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Callback for MQTT connection"""
        if reason_code == 0:
            self.connected = True
            logger.info("MQTT connected successfully")
        else:
            logger.error(f"MQTT connection failed with code {reason_code}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        """Callback for MQTT disconnection"""
        self.connected = False
        if reason_code != 0:
            logger.warning(f"MQTT unexpected disconnection (code {reason_code})")

    def _on_publish(self, client, userdata, mid, reason_code, properties):
        """Callback for successful publish"""
        logger.debug(f"Message {mid} published")

    def publish(self, topic: str, payload: Any, qos: Optional[int] = None, retain: Optional[bool] = None):
        """
        Publish message to MQTT topic

        Args:
            topic: MQTT topic
            payload: Message payload (JSON-encoded if dict or list)
            qos: Quality of Service (0, 1, or 2)
            retain: Retain message flag
        """
        if not self.connected:
            raise ConnectionError("Not connected to MQTT broker")

        if qos is None:
            qos = self.config.qos
        if retain is None:
            retain = self.config.retain

        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload)

        result = self.client.publish(topic, payload, qos=qos, retain=retain)

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(f"Publish failed: {result.rc}")
        else:
            logger.debug(f"Published to {topic}: {payload}")

    def publish_frame(self, frame, highlights=None):
        """
        Publish one decoded frame

        Args:
            frame: FrameEntry
            highlights: Optional FrameHighlights computed for the frame
        """
        payload = {
            "bits": frame.bits,
            "hex": frame.hex,
            "text": frame.text,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if highlights is not None:
            payload["spans"] = {
                "bits": [asdict(span) for span in highlights.bits],
                "hex": [asdict(span) for span in highlights.hex],
                "text": [asdict(span) for span in highlights.text],
            }
        self.publish(f"{self.topic_root}/frames", payload)

    def publish_boundaries(self, boundaries: List[int], bit_count: int):
        """Publish the timeline frame boundaries"""
        self.publish(f"{self.topic_root}/timeline",
                     {"boundaries": boundaries, "bit_count": bit_count}, retain=True)

    def publish_availability(self, available: bool):
        """
        Publish sniffer availability status

        Args:
            available: True while a session is running
        """
        payload = "online" if available else "offline"
        self.publish(f"{self.topic_root}/availability", payload, retain=True)

    def __enter__(self):
        """Context manager entry"""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.publish_availability(False)
        self.disconnect()
