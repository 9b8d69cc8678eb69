"""
Serial session controller for the ESP32 trame sniffer.

Sends the sniffing configuration to the board, waits for its READY_TO_SNIFF
handshake, then reads newline-terminated bit frames until stopped or idle.
A simulation mode produces random frames on a timer without any hardware.

Session states:
    IDLE -> SENDING_CONFIG -> AWAITING_HANDSHAKE -> LISTENING -> STOPPED

Wire format:
    Config lines:  baudrate=<int> / parity=<none|even|odd> / databits=<int> / stopbits=<int>
    Frames:        '0'/'1' characters terminated by '\\n'
"""
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import serial

logger = logging.getLogger(__name__)

READY_TOKEN = "READY_TO_SNIFF"

PARITY_VALUES = ("none", "even", "odd")

FrameCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception], None]


class SessionState(Enum):
    """Listening state machine states"""
    IDLE = "idle"
    SENDING_CONFIG = "sending_config"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    LISTENING = "listening"
    STOPPED = "stopped"


class SerialSessionError(ConnectionError):
    """Transport failure that ended a session"""


class HandshakeTimeout(SerialSessionError):
    """No READY token within the handshake window (strict mode only)"""


@dataclass
class PortConfig:
    """Line settings the sniffer board applies to the monitored link"""
    baudrate: int = 9600
    parity: str = "none"
    databits: int = 8
    stopbits: int = 1

    def __post_init__(self):
        self.parity = str(self.parity).lower()
        if self.parity not in PARITY_VALUES:
            raise ValueError(f"Invalid parity {self.parity!r}, expected one of {PARITY_VALUES}")

    def config_lines(self) -> List[str]:
        """Configuration lines sent to the board, in order"""
        return [
            f"baudrate={int(self.baudrate)}",
            f"parity={self.parity}",
            f"databits={int(self.databits)}",
            f"stopbits={int(self.stopbits)}",
        ]


@dataclass
class SessionConfig:
    """Serial session settings"""
    port: Optional[str] = None          # e.g. "COM3", "/dev/ttyUSB0"
    link_baudrate: int = 115200         # PC <-> board link
    port_config: PortConfig = field(default_factory=PortConfig)

    auto_stop: bool = True
    inactivity_timeout: float = 10.0
    handshake_timeout: float = 5.0
    require_handshake: bool = False
    ready_token: str = READY_TOKEN

    config_line_delay: float = 0.3
    handshake_poll: float = 0.05
    listen_poll: float = 0.1

    # Simulation mode
    simulation_period: float = 1.0
    simulation_frame_bits: int = 40


class SerialSessionController:
    """
    Owns one serial listening (or simulation) session at a time

    The loop runs on a daemon thread. The frame callback is invoked on that
    thread with the raw bit string of each frame; callers that touch shared
    state from it must synchronize.

    Stopping is cooperative: stop() sets an event that the loop checks at
    every poll, so latency is bounded by the poll interval.
    """

    def __init__(self, config: Optional[SessionConfig] = None, simulation: bool = False,
                 rng: Optional[random.Random] = None):
        """
        Initialize the controller

        Args:
            config: Session settings (defaults used when omitted)
            simulation: True to generate random frames instead of opening a port
            rng: Random source for simulated frames
        """
        self.config = config or SessionConfig()
        self.simulation = simulation
        self.state = SessionState.IDLE
        self.serial = None
        self.thread: Optional[threading.Thread] = None
        self.error: Optional[Exception] = None
        self.frames_emitted = 0
        self.on_state_change: Optional[Callable[[SessionState, SessionState], None]] = None

        self._rng = rng or random.Random()
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._listening = False
        self._carry = b""

    @property
    def listening(self) -> bool:
        """True while a listening or simulation loop is active"""
        return self._listening

    def set_simulation_mode(self, enabled: bool):
        """Select simulation or real listening for the next start()"""
        if self._listening:
            raise RuntimeError("Cannot change mode while a session is active")
        self.simulation = enabled

    def start(self, on_frame: FrameCallback, on_error: Optional[ErrorCallback] = None):
        """
        Start a new session on a background thread

        Args:
            on_frame: Called with the bit string of every received frame
            on_error: Called with the exception that ended the session, if any

        Raises:
            RuntimeError: if a session is already active
            SerialSessionError: if the serial port cannot be opened
        """
        with self._lock:
            if self._listening:
                raise RuntimeError("A session is already listening")
            self._listening = True

        self._stop_event.clear()
        self._carry = b""
        self.error = None
        self.frames_emitted = 0
        self._set_state(SessionState.IDLE)

        if self.simulation:
            logger.info("Simulation mode active")
            target = self._simulation_loop
        else:
            try:
                self._open_port()
            except SerialSessionError as e:
                self.error = e
                self._set_state(SessionState.STOPPED)
                self._listening = False
                raise
            target = self._session_loop

        self.thread = threading.Thread(target=target, args=(on_frame, on_error),
                                       name="serial-session", daemon=True)
        self.thread.start()

    def stop(self, wait: bool = True, timeout: float = 2.0):
        """Request the active loop to stop"""
        self._stop_event.set()
        logger.info("Stop requested")

        if wait and self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=timeout)
            if self.thread.is_alive():
                logger.warning("Session thread still running, closing port")
                self._close_port()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the session ends; returns True if it did"""
        if self.thread:
            self.thread.join(timeout=timeout)
        return not self._listening

    def send_config_only(self, port: Optional[str] = None, port_config: Optional[PortConfig] = None):
        """Open the port, write the configuration lines and close it again"""
        port = port or self.config.port
        port_config = port_config or self.config.port_config
        try:
            with serial.Serial(port=port, baudrate=self.config.link_baudrate,
                               timeout=self.config.listen_poll) as link:
                for line in port_config.config_lines():
                    link.write(f"{line}\n".encode("utf-8"))
                    link.flush()
                    logger.info(f"Sent (config only): {line}")
                    time.sleep(self.config.config_line_delay)
        except (serial.SerialException, OSError, ValueError) as e:
            logger.error(f"Failed to send config to {port}: {e}")
            raise SerialSessionError(f"Failed to send config to {port}: {e}") from e
        logger.info("Port closed after sending config")

    # --- Internals ---

    def _set_state(self, new_state: SessionState):
        old_state = self.state
        self.state = new_state
        if old_state != new_state:
            logger.debug(f"Session state {old_state.value} -> {new_state.value}")
            if self.on_state_change:
                try:
                    self.on_state_change(old_state, new_state)
                except Exception:
                    logger.exception("State change callback failed")

    def _open_port(self):
        port = self.config.port
        if not port:
            raise SerialSessionError("No serial port configured")
        try:
            self.serial = serial.Serial(
                port=port,
                baudrate=self.config.link_baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.config.listen_poll
            )
        except (serial.SerialException, OSError, ValueError) as e:
            logger.error(f"Failed to open serial port {port}: {e}")
            raise SerialSessionError(f"Failed to open serial port {port}: {e}") from e
        logger.info(f"Port opened: {port} @ {self.config.link_baudrate} baud")

    def _close_port(self):
        link = self.serial
        if link is not None and link.is_open:
            try:
                link.close()
                logger.info("Serial port closed")
            except (serial.SerialException, OSError) as e:
                logger.error(f"Error closing serial port: {e}")

    def _fail(self, error: Exception, on_error: Optional[ErrorCallback]):
        self.error = error
        logger.error(f"Session aborted: {error}")
        if on_error:
            try:
                on_error(error)
            except Exception:
                logger.exception("Error callback failed")

    def _session_loop(self, on_frame: FrameCallback, on_error: Optional[ErrorCallback]):
        try:
            self._send_config()
            if not self._stop_event.is_set():
                self._await_handshake()
            if not self._stop_event.is_set():
                self._listen(on_frame)
        except SerialSessionError as e:
            self._fail(e, on_error)
        except (serial.SerialException, OSError) as e:
            if self._stop_event.is_set():
                logger.debug(f"I/O error after stop request: {e}")
            else:
                self._fail(SerialSessionError(f"Serial I/O error: {e}"), on_error)
        finally:
            self._close_port()
            self._set_state(SessionState.STOPPED)
            self._listening = False

    def _send_config(self):
        self._set_state(SessionState.SENDING_CONFIG)
        for line in self.config.port_config.config_lines():
            if self._stop_event.is_set():
                return
            self.serial.write(f"{line}\n".encode("utf-8"))
            self.serial.flush()
            logger.info(f"Sent: {line}")
            self._stop_event.wait(self.config.config_line_delay)

    def _await_handshake(self):
        self._set_state(SessionState.AWAITING_HANDSHAKE)
        logger.info(f"Waiting for {self.config.ready_token} from device...")

        deadline = time.monotonic() + self.config.handshake_timeout
        buffer = bytearray()
        while time.monotonic() < deadline and not self._stop_event.is_set():
            waiting = self.serial.in_waiting
            if not waiting:
                self._stop_event.wait(self.config.handshake_poll)
                continue

            data = self.serial.read(waiting)
            for i, byte in enumerate(data):
                if byte != 0x0A:
                    buffer.append(byte)
                    continue
                line = buffer.decode("ascii", errors="replace").strip()
                buffer.clear()
                logger.info(f"Device says: {line}")
                if self.config.ready_token in line:
                    # Bytes after the READY line already belong to the frame stream
                    self._carry = bytes(data[i + 1:])
                    logger.info("Device ready, listening for frames")
                    return

        if self._stop_event.is_set():
            return
        if self.config.require_handshake:
            raise HandshakeTimeout(
                f"No {self.config.ready_token} within {self.config.handshake_timeout}s")
        logger.warning(f"No {self.config.ready_token} within {self.config.handshake_timeout}s, "
                       f"listening anyway")
        # A partial line may be the start of the first frame
        self._carry = bytes(buffer)

    def _listen(self, on_frame: FrameCallback):
        self._set_state(SessionState.LISTENING)

        buffer = bytearray()
        pending, self._carry = self._carry, b""
        last_activity = time.monotonic()

        while not self._stop_event.is_set():
            if pending:
                data, pending = pending, b""
            else:
                waiting = self.serial.in_waiting
                data = self.serial.read(waiting) if waiting else b""

            if data:
                last_activity = time.monotonic()
                for byte in data:
                    if byte == 0x0A:
                        self._emit(buffer, on_frame)
                        buffer.clear()
                    else:
                        buffer.append(byte)
                continue

            if self.config.auto_stop and time.monotonic() - last_activity > self.config.inactivity_timeout:
                logger.info(f"No data for {self.config.inactivity_timeout}s, closing port")
                return
            self._stop_event.wait(self.config.listen_poll)

    def _emit(self, raw: bytearray, on_frame: FrameCallback):
        line = raw.decode("ascii", errors="replace").strip()
        if not line:
            logger.debug("Skipping empty line")
            return

        logger.debug(f"Received: {line}")
        self.frames_emitted += 1
        try:
            on_frame(line)
        except Exception:
            logger.exception("Frame callback failed")

    def _simulation_loop(self, on_frame: FrameCallback, on_error: Optional[ErrorCallback]):
        self._set_state(SessionState.LISTENING)
        try:
            while not self._stop_event.is_set():
                bits = "".join(self._rng.choice("01") for _ in range(self.config.simulation_frame_bits))
                self.frames_emitted += 1
                try:
                    on_frame(bits)
                except Exception:
                    logger.exception("Frame callback failed")
                self._stop_event.wait(self.config.simulation_period)
        finally:
            self._set_state(SessionState.STOPPED)
            self._listening = False
            logger.info("Simulation stopped")
