"""
Trame Sniffer
Main application: listens to the ESP32 sniffer board (or simulates it),
decodes every frame, keeps the capture log and computes highlights
"""
import logging
import signal
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from database.frame_database import FrameDatabase
from sniffer.dictionary import DictionaryTokenizer
from sniffer.export import FORMATS, export_frames
from sniffer.frames import FrameEntry, FrameProcessor
from sniffer.highlight import FilterRule, FrameDisplay
from sniffer.mqtt import FramePublisher, MQTTConfig
from sniffer.serial_session import PortConfig, SerialSessionController, SessionConfig
from sniffer.timeline import Timeline

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """Application configuration"""
    # Serial link to the sniffer board
    port: Optional[str] = None
    link_baudrate: int = 115200

    # Line settings forwarded to the board
    port_config: Dict[str, Any] = field(default_factory=dict)

    # Session behaviour
    simulation: bool = False
    auto_stop: bool = True
    inactivity_timeout: float = 10.0
    handshake_timeout: float = 5.0
    require_handshake: bool = False

    # Capture log / configuration store
    database_path: str = "capture_logs/frames.db"

    # Show only frames matching a filter rule
    only_matching: bool = False

    # MQTT output (disabled when empty)
    mqtt: Dict[str, Any] = field(default_factory=dict)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


class SnifferApp:
    """Main sniffer application"""

    def __init__(self, config_path: str = "config.yaml", config: Optional[AppConfig] = None):
        self.config_path = Path(config_path)
        self.config = config or self._load_config()
        self.running = False
        self.lock = threading.Lock()

        # Setup logging
        self._setup_logging()

        logger.info(f"Opening capture database: {self.config.database_path}")
        self.database = FrameDatabase(self.config.database_path)

        self.tokenizer = DictionaryTokenizer(self.database.list_dictionary())
        self.processor = FrameProcessor(self.tokenizer, self.database)
        self.timeline = Timeline()
        self.display = FrameDisplay(self._load_filters(), only_matching=self.config.only_matching)
        self.frames: List[FrameEntry] = []

        self.controller = SerialSessionController(self._create_session_config(),
                                                  simulation=self.config.simulation)
        self.publisher: Optional[FramePublisher] = None

    def _load_config(self) -> AppConfig:
        """Load configuration from YAML file"""
        if not self.config_path.exists():
            logger.warning(f"Config file not found: {self.config_path}, using defaults")
            return AppConfig()

        with open(self.config_path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        return AppConfig(**config_dict)

    def _setup_logging(self):
        """Configure logging"""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        handlers = [logging.StreamHandler(sys.stdout)]

        if self.config.log_file:
            handlers.append(logging.FileHandler(self.config.log_file))

        logging.basicConfig(
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=handlers
        )

    def _create_session_config(self) -> SessionConfig:
        """Create SessionConfig from app config"""
        port_cfg = self.config.port_config

        return SessionConfig(
            port=self.config.port,
            link_baudrate=self.config.link_baudrate,
            port_config=PortConfig(
                baudrate=port_cfg.get('baudrate', 9600),
                parity=port_cfg.get('parity', 'none'),
                databits=port_cfg.get('databits', 8),
                stopbits=port_cfg.get('stopbits', 1),
            ),
            auto_stop=self.config.auto_stop,
            inactivity_timeout=self.config.inactivity_timeout,
            handshake_timeout=self.config.handshake_timeout,
            require_handshake=self.config.require_handshake,
        )

    def _create_mqtt_config(self) -> MQTTConfig:
        """Create MQTTConfig from app config"""
        mqtt_cfg = self.config.mqtt

        return MQTTConfig(
            broker=mqtt_cfg.get('broker', 'localhost'),
            port=mqtt_cfg.get('port', 1883),
            username=mqtt_cfg.get('username'),
            password=mqtt_cfg.get('password'),
            client_id=mqtt_cfg.get('client_id', 'trame_sniffer'),
            base_topic=mqtt_cfg.get('base_topic', 'sniffer'),
            device_id=mqtt_cfg.get('device_id', 'esp32_sniffer'),
        )

    def _load_filters(self) -> List[FilterRule]:
        filters = [rule for _, rule in self.database.list_filters()]
        logger.info(f"Loaded {len(filters)} filter rules")
        return filters

    def reload_dictionary(self):
        """Reload the dictionary snapshot and re-translate the frames in memory"""
        snapshot = self.database.list_dictionary()
        with self.lock:
            self.tokenizer.load(snapshot)
            self.frames = self.processor.retranslate(self.frames)
            self.display.frames = list(self.frames)
            self.display.refresh()

    def reload_filters(self):
        with self.lock:
            self.display.set_filters(self._load_filters())

    def on_frame(self, bits: str) -> FrameEntry:
        """Handle one frame from the session thread"""
        with self.lock:
            # Decoded and stored under the lock so a dictionary reload cannot interleave
            entry = self.processor.process_bits(bits)
            self.frames.append(entry)
            self.timeline.append(entry.bits)
            spans = self.display.append(entry)
            boundaries = self.timeline.boundaries
            bit_count = self.timeline.bit_count()
            self.processor.save(entry)

        logger.info(f"Frame {len(self.frames)}: {entry.hex} | {entry.text}")

        if self.publisher and self.publisher.connected:
            try:
                self.publisher.publish_frame(entry, spans)
                self.publisher.publish_boundaries(boundaries, bit_count)
            except Exception as e:
                logger.error(f"Error publishing frame: {e}")

        return entry

    def on_error(self, error: Exception):
        logger.error(f"Serial session failed: {error}")

    def clear(self):
        """Reset the in-memory session (capture log is kept)"""
        with self.lock:
            self.frames = []
            self.timeline.clear()
            self.display.reset()

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        self.running = False

    def start(self) -> int:
        """Run a listening session until it ends; returns a process exit code"""
        mode = "simulation" if self.controller.simulation else f"port {self.config.port}"
        logger.info(f"Starting trame sniffer ({mode})")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        exit_code = 0
        try:
            if self.config.mqtt:
                self.publisher = FramePublisher(self._create_mqtt_config())
                self.publisher.connect()
                self.publisher.publish_availability(True)

            self.controller.start(self.on_frame, self.on_error)
            self.running = True

            while self.running and self.controller.listening:
                time.sleep(0.2)

            if self.controller.error:
                exit_code = 1

        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        except Exception as e:
            logger.error(f"Fatal error: {e}", exc_info=True)
            exit_code = 1
        finally:
            self.stop()

        return exit_code

    def stop(self):
        """Stop the session and release resources"""
        logger.info("Stopping sniffer...")
        self.running = False

        if self.controller.listening:
            self.controller.stop()

        if self.publisher:
            try:
                if self.publisher.connected:
                    self.publisher.publish_availability(False)
                self.publisher.disconnect()
            except Exception as e:
                logger.error(f"Error disconnecting MQTT: {e}")
            self.publisher = None

        logger.info(f"Sniffer stopped ({len(self.frames)} frames)")

    def export(self, path: str, fmt: str = "csv", from_db: bool = True, only_filtered: bool = False) -> int:
        """Export captured frames to a CSV or JSON file"""
        with self.lock:
            frames = self.processor.load_all() if from_db else list(self.frames)
            filters = list(self.display.filters)

        if only_filtered:
            frames = self.processor.filter_frames(frames, filters)

        return export_frames(frames, path, fmt)

    def close(self):
        self.database.close()


def main(argv=None) -> int:
    """Entry point"""
    import argparse

    parser = argparse.ArgumentParser(description='Serial trame sniffer')
    parser.add_argument('-c', '--config', default='config.yaml', help='Configuration file path')
    parser.add_argument('-p', '--port', help='Serial port of the sniffer board')
    parser.add_argument('-s', '--simulate', action='store_true', help='Generate random frames instead of listening')
    parser.add_argument('--no-auto-stop', action='store_true', help='Keep listening when the line goes idle')
    parser.add_argument('--export', metavar='PATH', help='Export the capture log and exit')
    parser.add_argument('--format', choices=FORMATS, default='csv', help='Export format')
    parser.add_argument('--only-filtered', action='store_true', help='Export only frames matching a filter rule')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    args = parser.parse_args(argv)

    app = SnifferApp(config_path=args.config)

    # Command line overrides
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.port:
        app.controller.config.port = args.port
        app.config.port = args.port
    if args.simulate:
        app.controller.set_simulation_mode(True)
    if args.no_auto_stop:
        app.controller.config.auto_stop = False

    try:
        if args.export:
            count = app.export(args.export, args.format, only_filtered=args.only_filtered)
            print(f"Exported {count} frames to {args.export}")
            return 0
        return app.start()
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
