"""
Viewer-side stream handling: reconnection state machine and streaming client.
"""
from .reconnect import ConnectionState, ReconnectController, ReconnectState

__all__ = ['ConnectionState', 'ReconnectController', 'ReconnectState']
