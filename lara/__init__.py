"""LARA: live classroom sessions with teacher-reviewed AI feedback."""

__version__ = "1.0.0"
