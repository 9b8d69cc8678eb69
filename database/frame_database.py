"""
Frame Database - capture log and configuration store for the trame sniffer
Holds received frames, serial port configurations, filter rules and the
hex -> label dictionary
"""

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from sniffer.dictionary import DictionaryEntry, normalize_pattern
from sniffer.highlight import FilterRule, parse_color
from sniffer.serial_session import PortConfig

logger = logging.getLogger(__name__)


class FrameDatabase:
    """SQLite database for captured frames and user configuration"""

    def __init__(self, db_path="capture_logs/frames.db"):
        """Initialize database connection"""
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        # Frames arrive on the serial session thread
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self.lock = threading.Lock()

        self._create_tables()

    def _create_tables(self):
        """Create database tables if they don't exist"""

        # Capture log
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS frame_capture (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                raw_bits TEXT,
                raw_hexa TEXT,
                raw_text TEXT,
                timestamp TEXT NOT NULL
            )
        """)

        # Line settings sent to the sniffer board
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS port_config (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                baudrate TEXT,
                parity TEXT,
                databits TEXT,
                stopbits TEXT
            )
        """)

        # Highlight rules
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS custom_filter (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                color TEXT,
                name TEXT,
                pattern TEXT
            )
        """)

        # Hex pattern -> label
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS dictionary (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                description TEXT NOT NULL,
                hex_pattern TEXT NOT NULL
            )
        """)

        self.cursor.execute("CREATE INDEX IF NOT EXISTS idx_frame_hexa ON frame_capture(raw_hexa)")

        self.conn.commit()

    # --- Capture log ---

    def insert_frame(self, bits, hex_line, text):
        """Store one received frame"""
        timestamp = datetime.now().isoformat()

        with self.lock:
            self.cursor.execute("""
                INSERT INTO frame_capture (raw_bits, raw_hexa, raw_text, timestamp)
                VALUES (?, ?, ?, ?)
            """, (bits, hex_line, text, timestamp))
            self.conn.commit()
            return self.cursor.lastrowid

    def load_frames(self, limit=None):
        """Return (bits, hex, text) tuples in capture order"""
        query = "SELECT raw_bits, raw_hexa, raw_text FROM frame_capture ORDER BY id"
        params = []
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self.lock:
            self.cursor.execute(query, params)
            return self.cursor.fetchall()

    def count_frames(self):
        with self.lock:
            self.cursor.execute("SELECT COUNT(*) FROM frame_capture")
            return self.cursor.fetchone()[0]

    def clear_frames(self):
        """Delete every captured frame"""
        with self.lock:
            self.cursor.execute("DELETE FROM frame_capture")
            self.conn.commit()

    def update_frame_text(self, hex_line, new_text):
        """Replace the decoded text of every frame with the given hex"""
        with self.lock:
            self.cursor.execute("""
                UPDATE frame_capture SET raw_text = ? WHERE raw_hexa = ?
            """, (new_text, hex_line))
            self.conn.commit()
            return self.cursor.rowcount

    # --- Port configurations ---

    def list_port_configs(self):
        """Return (id, PortConfig) pairs"""
        with self.lock:
            self.cursor.execute("SELECT id, baudrate, parity, databits, stopbits FROM port_config ORDER BY id")
            rows = self.cursor.fetchall()
        return [(row[0], self._port_config_from_row(row[1:])) for row in rows]

    def get_port_config(self, config_id):
        with self.lock:
            self.cursor.execute("""
                SELECT baudrate, parity, databits, stopbits FROM port_config WHERE id = ?
            """, (config_id,))
            row = self.cursor.fetchone()
        return self._port_config_from_row(row) if row else None

    def insert_port_config(self, config: PortConfig):
        with self.lock:
            self.cursor.execute("""
                INSERT INTO port_config (baudrate, parity, databits, stopbits)
                VALUES (?, ?, ?, ?)
            """, (str(config.baudrate), config.parity, str(config.databits), str(config.stopbits)))
            self.conn.commit()
            return self.cursor.lastrowid

    def update_port_config(self, config_id, config: PortConfig):
        with self.lock:
            self.cursor.execute("""
                UPDATE port_config SET baudrate = ?, parity = ?, databits = ?, stopbits = ?
                WHERE id = ?
            """, (str(config.baudrate), config.parity, str(config.databits), str(config.stopbits), config_id))
            self.conn.commit()
            return self.cursor.rowcount > 0

    def delete_port_config(self, config_id):
        with self.lock:
            self.cursor.execute("DELETE FROM port_config WHERE id = ?", (config_id,))
            self.conn.commit()
            return self.cursor.rowcount > 0

    @staticmethod
    def _port_config_from_row(row):
        baudrate, parity, databits, stopbits = row
        return PortConfig(
            baudrate=int(baudrate),
            parity=parity,
            databits=int(databits),
            stopbits=int(stopbits)
        )

    # --- Filter rules ---

    def list_filters(self):
        """Return (id, FilterRule) pairs; rows with an unusable colour are skipped"""
        with self.lock:
            self.cursor.execute("SELECT id, pattern, color, name FROM custom_filter ORDER BY id")
            rows = self.cursor.fetchall()

        filters = []
        for filter_id, pattern, color, name in rows:
            try:
                filters.append((filter_id, FilterRule(pattern or "", color, name)))
            except ValueError as e:
                logger.warning(f"Skipping filter {filter_id}: {e}")
        return filters

    def get_filter(self, filter_id):
        with self.lock:
            self.cursor.execute("SELECT pattern, color, name FROM custom_filter WHERE id = ?", (filter_id,))
            row = self.cursor.fetchone()
        return FilterRule(*row) if row else None

    def insert_filter(self, pattern, color, name=None):
        """Store a filter rule; the colour must be #RRGGBB"""
        parse_color(color)
        with self.lock:
            self.cursor.execute("""
                INSERT INTO custom_filter (pattern, color, name) VALUES (?, ?, ?)
            """, (pattern, color, name))
            self.conn.commit()
            return self.cursor.lastrowid

    def update_filter(self, filter_id, pattern, color, name=None):
        parse_color(color)
        with self.lock:
            self.cursor.execute("""
                UPDATE custom_filter SET pattern = ?, color = ?, name = ? WHERE id = ?
            """, (pattern, color, name, filter_id))
            self.conn.commit()
            return self.cursor.rowcount > 0

    def delete_filter(self, filter_id):
        with self.lock:
            self.cursor.execute("DELETE FROM custom_filter WHERE id = ?", (filter_id,))
            self.conn.commit()
            return self.cursor.rowcount > 0

    # --- Dictionary ---

    def list_dictionary(self):
        """Ordered dictionary snapshot (declaration order)"""
        with self.lock:
            self.cursor.execute("SELECT hex_pattern, description FROM dictionary ORDER BY id")
            rows = self.cursor.fetchall()
        return [DictionaryEntry.create(pattern, description) for pattern, description in rows]

    def lookup_dictionary(self, hex_pattern):
        """Translation for a hex pattern, ignoring spaces and case"""
        with self.lock:
            self.cursor.execute("""
                SELECT description FROM dictionary
                WHERE REPLACE(UPPER(hex_pattern), ' ', '') = ?
                ORDER BY id LIMIT 1
            """, (normalize_pattern(hex_pattern),))
            row = self.cursor.fetchone()
        return row[0] if row else None

    def insert_dictionary_entry(self, hex_pattern, translation):
        with self.lock:
            self.cursor.execute("""
                INSERT INTO dictionary (hex_pattern, description) VALUES (?, ?)
            """, (normalize_pattern(hex_pattern), translation.strip()))
            self.conn.commit()
            return self.cursor.lastrowid

    def update_dictionary_entry(self, hex_pattern, translation):
        with self.lock:
            self.cursor.execute("""
                UPDATE dictionary SET description = ?
                WHERE REPLACE(UPPER(hex_pattern), ' ', '') = ?
            """, (translation.strip(), normalize_pattern(hex_pattern)))
            self.conn.commit()
            return self.cursor.rowcount > 0

    def delete_dictionary_entry(self, hex_pattern):
        with self.lock:
            self.cursor.execute("""
                DELETE FROM dictionary WHERE REPLACE(UPPER(hex_pattern), ' ', '') = ?
            """, (normalize_pattern(hex_pattern),))
            self.conn.commit()
            return self.cursor.rowcount > 0

    def close(self):
        """Close database connection"""
        self.conn.close()
