"""
Settings storage for wxdump.
Persists tool paths, codec service address and tuning knobs.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Any, Optional, Dict

logger = logging.getLogger(__name__)


class SettingsStore:
    """Manages the SQLite ``config`` table"""

    VERSION = "1.0.0"

    DEFAULTS = {
        'app_version': VERSION,
        'codec_server': '',
        'ffmpeg_path': 'ffmpeg',
        'ffprobe_path': 'ffprobe',
        'silk_decoder_path': 'silk_decoder',
        'voice_workers': '3',
        'emoji_cache_flush_threshold': '15',
        'jpeg_quality': '50',
        'http_connect_timeout': '10',
        'http_read_timeout': '60',
        'user_agent': 'MicroMessenger Client',
        'proxy_url': '',
    }

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize settings store

        Args:
            db_path: Path to SQLite database file. ``None`` keeps settings in memory.
        """
        if db_path is not None:
            db_path = Path(db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Establish database connection"""
        target = str(self.db_path) if self.db_path is not None else ":memory:"
        self.conn = sqlite3.connect(
            target,
            check_same_thread=False,
            timeout=30.0
        )
        self.conn.row_factory = sqlite3.Row
        self._initialize_schema()

    def _initialize_schema(self):
        """Create schema if not exists"""
        cursor = self.conn.cursor()

        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='config'")
        schema_exists = cursor.fetchone() is not None

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.commit()
        self._set_default_config()

        if not schema_exists:
            logger.info("Settings schema initialized")
        else:
            logger.debug("Settings schema verified")

    def _set_default_config(self):
        """Set default configuration values"""
        cursor = self.conn.cursor()
        for key, value in self.DEFAULTS.items():
            cursor.execute("""
                INSERT OR IGNORE INTO config (key, value)
                VALUES (?, ?)
            """, (key, value))
        self.conn.commit()

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Retrieve configuration value

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT value FROM config WHERE key = ?
        """, (key,))

        row = cursor.fetchone()
        if row:
            return row['value']
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get_config(key)
        if value is None or value == '':
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid integer setting {key}={value!r}, using {default}")
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_config(key)
        if value is None:
            return default
        return str(value).strip().lower() in ('1', 'true', 'yes', 'on')

    def set_config(self, key: str, value: Any):
        """
        Set configuration value

        Args:
            key: Configuration key
            value: Configuration value
        """
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO config (key, value, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
        """, (key, str(value)))
        self.conn.commit()

    def get_all_config(self) -> Dict[str, str]:
        """Get all configuration as dictionary"""
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT key, value FROM config
        """)
        return {row['key']: row['value'] for row in cursor.fetchall()}

    def close(self):
        """Close database connection"""
        if self.conn:
            self.conn.close()
            self.conn = None
