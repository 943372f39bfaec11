"""
Response headers and audit logging for CamWall.
"""
import logging
from pathlib import Path
from typing import Optional

from flask import request

from .logs import TagFormatter


# ============================================================================
# AUDIT LOGGING
# ============================================================================

_audit_logger = None


def init_audit_log(log_dir: Optional[str] = None) -> logging.Logger:
    """Create the audit logger, with an audit.log file when log_dir is set"""
    global _audit_logger
    if _audit_logger is not None:
        return _audit_logger

    _audit_logger = logging.getLogger('camwall.audit')
    _audit_logger.setLevel(logging.INFO)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)

        # Format: timestamp | event_type | ip | details
        file_handler = logging.FileHandler(path / 'audit.log')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(TagFormatter(
            '%(asctime)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        _audit_logger.addHandler(file_handler)

    return _audit_logger


def audit_log(event_type: str, ip: str, details: str = ''):
    """Log a stream lifecycle event requested by a client"""
    init_audit_log().info(f"{event_type} | {ip} | {details}")


def get_client_ip() -> str:
    """Get client IP from request"""
    if request.headers.get('X-Forwarded-For'):
        return request.headers.get('X-Forwarded-For').split(',')[0].strip()
    elif request.headers.get('X-Real-IP'):
        return request.headers.get('X-Real-IP')
    return request.remote_addr or '127.0.0.1'


# ============================================================================
# RESPONSE HEADERS
# ============================================================================

def add_security_headers(response):
    """Add security headers to response"""
    # Prevent MIME type sniffing
    response.headers['X-Content-Type-Options'] = 'nosniff'

    # The wall page may embed streams, but nothing else should frame us
    response.headers['X-Frame-Options'] = 'SAMEORIGIN'

    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

    # API data is always live; streams declare their own cache policy
    if request.blueprint == 'api' and 'Cache-Control' not in response.headers:
        response.headers['Cache-Control'] = 'no-store'

    return response
