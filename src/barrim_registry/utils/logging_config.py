"""
Centralized logging configuration for the Barrim registry.
Provides component-specific loggers, optionally with separate log files.
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ..config import get_config


class ComponentLogger:
    """Manages component-specific logging with separate files."""

    _loggers: Dict[str, logging.Logger] = {}
    _initialized = False
    _log_dir: Optional[Path] = None
    _to_file = False

    COMPONENTS = {
        'registration': {'level': logging.INFO, 'file': 'registration.log'},
        'approval': {'level': logging.INFO, 'file': 'approval.log'},
        'referrals': {'level': logging.INFO, 'file': 'referrals.log'},
        'database': {'level': logging.INFO, 'file': 'database.log'},
        'main': {'level': logging.INFO, 'file': 'main.log'},
        'error': {'level': logging.ERROR, 'file': 'errors.log'},
    }

    DETAILED_FORMAT = (
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - '
        '%(funcName)s() - %(message)s'
    )

    @classmethod
    def initialize(
        cls,
        log_dir: Optional[str] = None,
        debug: Optional[bool] = None,
        to_file: Optional[bool] = None,
    ) -> None:
        """
        Initialize the logging system with component-specific loggers.

        Args:
            log_dir: Directory for log files. Defaults to config.app.log_dir
            debug: Enable debug logging for all components
            to_file: Write per-component log files. Defaults to config.app.log_to_file
        """
        if cls._initialized:
            return

        config = get_config()
        debug = config.app.debug if debug is None else debug
        cls._to_file = config.app.log_to_file if to_file is None else to_file
        base_level = logging.DEBUG if debug else getattr(
            logging, config.app.log_level, logging.INFO
        )

        if cls._to_file:
            # Session-specific subdirectory
            session_dir = datetime.now().strftime("%Y%m%d_%H%M%S")
            cls._log_dir = Path(log_dir or config.app.log_dir) / session_dir
            cls._log_dir.mkdir(parents=True, exist_ok=True)

        detailed_formatter = logging.Formatter(cls.DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
        simple_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s', datefmt='%H:%M:%S'
        )

        for component_name, component_config in cls.COMPONENTS.items():
            logger = logging.getLogger(f"registry.{component_name}")
            logger.handlers.clear()

            level = logging.DEBUG if debug else max(base_level, component_config['level'])
            logger.setLevel(level)

            if cls._to_file:
                file_handler = logging.handlers.RotatingFileHandler(
                    cls._log_dir / component_config['file'],
                    maxBytes=10 * 1024 * 1024,  # 10MB
                    backupCount=5,
                    encoding='utf-8'
                )
                file_handler.setLevel(level)
                file_handler.setFormatter(detailed_formatter)
                logger.addHandler(file_handler)

            # Console handler for errors
            if component_name == 'error':
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(logging.ERROR)
                console_handler.setFormatter(simple_formatter)
                logger.addHandler(console_handler)
                logger.propagate = False

            cls._loggers[component_name] = logger

        cls._initialized = True

        main_logger = cls._loggers['main']
        main_logger.debug(
            f"Logging initialized (debug={debug}, log_dir={cls._log_dir or 'disabled'})"
        )

    @classmethod
    def component_for(cls, name: str) -> str:
        """Map a module path like 'barrim_registry.services.approval' to a component."""
        if not name.startswith('barrim_registry'):
            return name
        parts = name.split('.')
        if len(parts) < 2:
            return 'main'
        if parts[1] == 'services' and len(parts) >= 3:
            return parts[2]
        if parts[1] in ('db', 'store', 'repositories'):
            return 'database'
        return 'main'

    @classmethod
    def get_logger(cls, component: str) -> logging.Logger:
        """
        Get a logger for a specific component.

        Args:
            component: Component name (approval, referrals, database, ...)
                      or a module path such as ``__name__``
        """
        if not cls._initialized:
            cls.initialize()

        component = cls.component_for(component)
        if component not in cls._loggers:
            cls._create_component_logger(component)
        return cls._loggers[component]

    @classmethod
    def _create_component_logger(cls, component: str) -> None:
        """Create a component logger on-demand."""
        logger = logging.getLogger(f"registry.{component}")
        logger.setLevel(cls._loggers['main'].level)

        if cls._to_file and cls._log_dir is not None:
            file_handler = logging.handlers.RotatingFileHandler(
                cls._log_dir / f'{component}.log',
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(
                logging.Formatter(cls.DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
            )
            logger.addHandler(file_handler)

        cls._loggers[component] = logger

    @classmethod
    def log_exception(
        cls, component: str, exc: Exception, context: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log an exception with context to both component and error logs."""
        component_logger = cls.get_logger(component)
        error_logger = cls._loggers['error']

        context_str = ""
        if context:
            context_str = " | Context: " + ", ".join(f"{k}={v}" for k, v in context.items())

        component_logger.error(
            f"Exception in {component}: {type(exc).__name__}: {exc}{context_str}",
            exc_info=exc,
        )
        error_logger.error(
            f"[{component}] {type(exc).__name__}: {exc}{context_str}", exc_info=exc
        )

    @classmethod
    def get_log_directory(cls) -> Optional[Path]:
        return cls._log_dir

    @classmethod
    def reset(cls) -> None:
        """Drop all handlers so the next call re-initializes."""
        for logger in cls._loggers.values():
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        cls._loggers = {}
        cls._initialized = False
        cls._log_dir = None


def get_logger(component: str) -> logging.Logger:
    """Get a logger for a specific component."""
    return ComponentLogger.get_logger(component)


def initialize_logging(
    log_dir: Optional[str] = None, debug: Optional[bool] = None, to_file: Optional[bool] = None
) -> None:
    """Initialize the logging system."""
    ComponentLogger.initialize(log_dir=log_dir, debug=debug, to_file=to_file)


def log_exception(component: str, exc: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception with context."""
    ComponentLogger.log_exception(component, exc, context)
