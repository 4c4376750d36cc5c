"""Android device session and discovery manager."""

__version__ = "0.1.0"
