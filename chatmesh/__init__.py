"""Models, subject naming, stream layouts and service handlers for a multi-site chat system."""

__version__ = "0.1.0"