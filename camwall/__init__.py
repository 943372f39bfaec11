"""
CamWall - Flask Application Factory
Relays network camera feeds to browsers as MJPEG for a display wall.
"""
import time

from flask import Flask, current_app

from .config import Config, load_roster
from .logs import configure_logging, get_logger
from .security import add_security_headers, init_audit_log
from .services.registry import StreamRegistry
from .services.timers import TimerService
from .services.worker import build_ffmpeg_args

EXTENSION_KEY = 'camwall'

log = get_logger('app')


def build_registry(config, roster, timers=None) -> StreamRegistry:
    """StreamRegistry wired to the configured ffmpeg settings"""
    def worker_args(source_url):
        return build_ffmpeg_args(
            source_url,
            width=config.STREAM_WIDTH,
            height=config.STREAM_HEIGHT,
            fps=config.STREAM_FPS,
            quality=config.STREAM_QUALITY,
        )

    return StreamRegistry(
        roster.cameras,
        timers=timers or TimerService(),
        command=config.FFMPEG_PATH,
        worker_args=worker_args,
        boundary=config.STREAM_BOUNDARY,
        idle_timeout=config.IDLE_TIMEOUT,
        stale_after=config.STALE_SESSION_AGE,
        sweep_interval=config.SWEEP_INTERVAL,
    )


def create_app(config_class=Config, roster=None, registry=None):
    """Application factory pattern for Flask app creation"""
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app.config['LOG_LEVEL'], app.config.get('LOG_DIR'))
    init_audit_log(app.config.get('LOG_DIR'))

    # Roster problems are fatal here, before anything is served
    if roster is None:
        roster = load_roster(app.config['CAMERA_CONFIG'])
    if registry is None:
        registry = build_registry(config_class, roster)

    app.extensions[EXTENSION_KEY] = {
        'roster': roster,
        'registry': registry,
        'started_at': time.time(),
    }

    app.after_request(add_security_headers)

    from .routes import main_bp, api_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp, url_prefix='/api')

    log.info(f"Configured cameras: {len(roster.cameras)}")
    return app


def get_registry() -> StreamRegistry:
    """Registry of the app handling the current request"""
    return current_app.extensions[EXTENSION_KEY]['registry']