"""
Logging setup for CamWall.
Component loggers live under the 'camwall' namespace and print as '[Tag] message'.
"""
import logging
from pathlib import Path
from typing import Optional

_TAGS = {
    'camwall.app': 'App',
    'camwall.audit': 'Audit',
    'camwall.client': 'Client',
    'camwall.config': 'Config',
    'camwall.monitor': 'Monitor',
    'camwall.registry': 'Registry',
    'camwall.relay': 'Relay',
    'camwall.stream': 'Stream',
    'camwall.worker': 'FFmpeg',
}

_configured = False


class TagFormatter(logging.Formatter):
    """Render 'camwall.registry' as '[Registry]'"""

    def format(self, record):
        record.tag = _TAGS.get(record.name, record.name.rsplit('.', 1)[-1].title())
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f'camwall.{name}')


def configure_logging(level: str = 'INFO', log_dir: Optional[str] = None) -> None:
    """Install console (and optional file) handlers on the 'camwall' logger once"""
    global _configured
    if _configured:
        return

    root = logging.getLogger('camwall')
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(TagFormatter('[%(tag)s] %(message)s'))
    root.addHandler(console_handler)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path / 'camwall.log')
        file_handler.setFormatter(TagFormatter(
            '%(asctime)s | %(levelname)s | [%(tag)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root.addHandler(file_handler)

    _configured = True
