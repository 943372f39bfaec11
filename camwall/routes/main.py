"""
Main routes for CamWall.
Handles the MJPEG stream endpoint.
"""
from functools import partial

from flask import Blueprint, Response, current_app

from .. import get_registry
from ..errors import CameraNotFound, CloseReason, RegistryClosed, SpawnError
from ..logs import get_logger
from ..security import audit_log, get_client_ip
from ..services.relay import ResponseSink, stream_headers

main_bp = Blueprint('main', __name__)

log = get_logger('stream')


def _parse_camera_id(raw: str):
    try:
        return int(raw)
    except ValueError:
        return None


def _on_response_closed(registry, session, ip):
    if registry.close_session(session.session_id, CloseReason.CLIENT_DISCONNECT):
        log.info(f"Client disconnected from camera {session.camera_id} stream")
        audit_log('STREAM_CLOSED', ip, f"camera={session.camera_id} frames={session.frame_count}")


@main_bp.route('/camera/<camera_id>/stream')
def camera_stream(camera_id):
    """MJPEG stream for one camera. Replaces any stream already running for it."""
    registry = get_registry()
    cam_id = _parse_camera_id(camera_id)
    if cam_id is None:
        return Response('Camera not found', status=404, mimetype='text/plain')

    sink = ResponseSink(write_timeout=current_app.config['SINK_WRITE_TIMEOUT'])
    try:
        session = registry.open_session(cam_id, sink)
    except CameraNotFound:
        return Response('Camera not found', status=404, mimetype='text/plain')
    except SpawnError as e:
        log.error(f"Could not start stream for camera {cam_id}: {e}")
        return Response('Failed to start stream', status=500, mimetype='text/plain')
    except RegistryClosed:
        return Response('Server is shutting down', status=503, mimetype='text/plain')

    ip = get_client_ip()
    audit_log('STREAM_OPENED', ip, f"camera={cam_id} session={session.session_id}")

    response = Response(sink.stream(), status=200, headers=stream_headers(registry.boundary))
    response.call_on_close(partial(_on_response_closed, registry, session, ip))
    return response


@main_bp.route('/favicon.ico')
def favicon():
    return '', 204
