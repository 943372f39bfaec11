#!/usr/bin/env python3
"""
CamWall Server - Entry Point
"""
import os
import signal
import sys

from dotenv import load_dotenv

# Load environment variables before importing app
load_dotenv()

from camwall import create_app, get_logger
from camwall.config import DevelopmentConfig, ProductionConfig
from camwall.errors import ConfigError

log = get_logger('app')


def main():
    """Main entry point"""
    # Debug mode - disabled by default
    debug_mode = os.environ.get('DEBUG', 'false').lower() == 'true'
    config_class = DevelopmentConfig if debug_mode else ProductionConfig

    try:
        app = create_app(config_class)
    except ConfigError as e:
        print(f"[Config] Fatal: {e}", file=sys.stderr)
        sys.exit(1)

    roster = app.extensions['camwall']['roster']
    registry = app.extensions['camwall']['registry']

    # Background leak guard for sessions the idle timer missed
    registry.start_sweeper()

    def shutdown(signum, frame):
        """Graceful shutdown - close every stream, then stop serving"""
        log.info("Shutting down server...")
        registry.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    host = config_class.HOST or roster.host
    port = config_class.PORT or roster.port

    if debug_mode:
        log.warning("Debug mode is ENABLED (not for production!)")

    log.info(f"Camera monitor server running on http://{host}:{port}")
    log.info(
        f"Stream settings: {config_class.STREAM_WIDTH}x{config_class.STREAM_HEIGHT} "
        f"@ {config_class.STREAM_FPS}fps"
    )
    app.run(host=host, port=port, debug=debug_mode, threaded=True, use_reloader=False)


if __name__ == '__main__':
    main()
