"""
Centralized logging configuration with categorized loggers.

This module provides a flexible logging system with:
- Named categories for the resolution subsystems
- Per-category log level control
- Persistent configuration via the settings store
"""
import logging
from typing import Dict, Optional
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler


# Logger categories for different subsystems
class LoggerCategory:
    """Named categories for package loggers"""
    CORE = "core"                  # Resolver tiers, settings, context
    MEDIA = "media"                # Image decoding, block store
    NETWORK = "network"            # HTTP fetches
    CACHE = "cache"                # Persistent media cache
    CODEC = "codec"                # External wxgf decoder
    VOICE = "voice"                # Audio transcoding


# Default log levels for each category
DEFAULT_LOG_LEVELS = {
    LoggerCategory.CORE: logging.INFO,
    LoggerCategory.MEDIA: logging.INFO,
    LoggerCategory.NETWORK: logging.INFO,
    LoggerCategory.CACHE: logging.WARNING,  # Flushes are frequent
    LoggerCategory.CODEC: logging.INFO,
    LoggerCategory.VOICE: logging.INFO,
}


# Map module names to categories
MODULE_TO_CATEGORY = {
    # Core
    'wxdump.core': LoggerCategory.CORE,
    'wxdump.core.context': LoggerCategory.CORE,
    'wxdump.core.settings': LoggerCategory.CORE,
    'wxdump.core.resolver': LoggerCategory.CORE,
    'wxdump.core.avatars': LoggerCategory.CORE,
    'wxdump.core.images': LoggerCategory.CORE,
    'wxdump.core.emoji': LoggerCategory.CORE,
    'wxdump.core.videos': LoggerCategory.CORE,
    'wxdump.core.wcf_paths': LoggerCategory.CORE,

    # Network
    'wxdump.core.http_client': LoggerCategory.NETWORK,
    'wxdump.core.fetcher': LoggerCategory.NETWORK,

    # Cache
    'wxdump.core.cache': LoggerCategory.CACHE,

    # Media
    'wxdump.media': LoggerCategory.MEDIA,
    'wxdump.media.processor': LoggerCategory.MEDIA,
    'wxdump.media.blob_store': LoggerCategory.MEDIA,

    # Codec
    'wxdump.media.codec_gateway': LoggerCategory.CODEC,

    # Voice
    'wxdump.media.voice': LoggerCategory.VOICE,
}


class LoggingManager:
    """Manages package-wide logging configuration"""

    def __init__(self, log_dir: Optional[Path] = None, settings=None):
        """
        Initialize logging manager.

        Args:
            log_dir: Directory for log files
            settings: Settings store for persistent configuration
        """
        self.log_dir = Path(log_dir) if log_dir else (Path.home() / ".wxdump" / "logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.settings = settings
        self._category_levels: Dict[str, int] = {}
        self._load_levels_from_settings()

    def _load_levels_from_settings(self):
        """Load log levels from stored configuration"""
        if not self.settings:
            self._category_levels = DEFAULT_LOG_LEVELS.copy()
            return

        for category, default_level in DEFAULT_LOG_LEVELS.items():
            config_key = f'log_level_{category}'
            level_name = self.settings.get_config(config_key, logging.getLevelName(default_level))
            level = logging.getLevelName(str(level_name).upper())
            if isinstance(level, int):
                self._category_levels[category] = level
            else:
                self._category_levels[category] = default_level

    def get_category_level(self, category: str) -> int:
        """Get log level for a category"""
        return self._category_levels.get(category, logging.INFO)

    def set_category_level(self, category: str, level: int):
        """Set log level for a category"""
        self._category_levels[category] = level
        if self.settings:
            config_key = f'log_level_{category}'
            self.settings.set_config(config_key, logging.getLevelName(level))

        self._apply_category_level(category, level)

    def _apply_category_level(self, category: str, level: int):
        """Apply level to all loggers in a category"""
        for module_name, cat in MODULE_TO_CATEGORY.items():
            if cat == category:
                logging.getLogger(module_name).setLevel(level)

    def setup_logging(self, root_level: int = logging.INFO):
        """
        Setup logging with categories.

        Args:
            root_level: Root logger level (default: INFO)
        """
        log_file = self.log_dir / "wxdump.log"

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        # File handler with rotation
        file_handler = TimedRotatingFileHandler(
            log_file,
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)

        # Console handler
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)

        root_logger = logging.getLogger()
        root_logger.setLevel(root_level)

        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)

        root_logger.addHandler(file_handler)
        root_logger.addHandler(stream_handler)

        for category, level in self._category_levels.items():
            self._apply_category_level(category, level)

        # Silence noisy third-party loggers
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('requests').setLevel(logging.WARNING)
        logging.getLogger('aiohttp').setLevel(logging.WARNING)
        logging.getLogger('asyncio').setLevel(logging.WARNING)

    def get_all_levels(self) -> Dict[str, int]:
        """Get all category log levels"""
        return self._category_levels.copy()


# Global instance
_logging_manager: Optional[LoggingManager] = None


def get_logging_manager(settings=None, log_dir: Optional[Path] = None) -> LoggingManager:
    """Get or create the global logging manager"""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager(log_dir=log_dir, settings=settings)
    return _logging_manager


def setup_logging(settings=None, log_dir: Optional[Path] = None):
    """Setup logging (convenience function)"""
    manager = get_logging_manager(settings, log_dir)
    manager.setup_logging()
    return manager
