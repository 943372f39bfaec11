"""
Stream services for CamWall: worker supervision, frame relay and session registry.
"""
