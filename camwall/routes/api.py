"""
API routes for CamWall.
Camera roster, health and per-camera stream cleanup.
"""
import time

from flask import Blueprint, current_app, jsonify

from .. import EXTENSION_KEY, get_registry
from ..errors import CloseReason
from ..security import audit_log, get_client_ip

api_bp = Blueprint("api", __name__)


@api_bp.route("/cameras")
def get_cameras():
    """Configured cameras, without their source URLs"""
    return jsonify([camera.public_info() for camera in get_registry().cameras])


@api_bp.route("/health")
def health_check():
    """Active streams per camera and process uptime"""
    registry = get_registry()
    started_at = current_app.extensions[EXTENSION_KEY]["started_at"]
    streams_by_camera = {
        str(camera_id): info for camera_id, info in registry.describe().items()
    }
    return jsonify(
        {
            "status": "ok",
            "activeStreams": registry.active_count,
            "streamsByCamera": streams_by_camera,
            "uptime": round(time.time() - started_at),
            "configuredCameras": len(registry.cameras),
        }
    )


@api_bp.route("/camera/<camera_id>/cleanup", methods=["POST"])
def cleanup_camera(camera_id):
    """Force-close every stream of a camera"""
    try:
        cam_id = int(camera_id)
    except ValueError:
        return jsonify({"error": "Camera id must be an integer"}), 400

    closed = get_registry().close_camera(cam_id, CloseReason.CLEANUP)
    audit_log("STREAM_CLEANUP", get_client_ip(), f"camera={cam_id} closed={closed}")
    return jsonify(
        {"message": f"Cleaned up streams for camera {cam_id}", "closed": closed}
    )
