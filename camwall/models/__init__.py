"""
Data model for CamWall.
"""
from .camera import CameraConfig, StreamSession

__all__ = ['CameraConfig', 'StreamSession']
