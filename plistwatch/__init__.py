"""Reading, writing and converting binary and XML property lists."""

__version__ = "0.1.0"