"""Live Local client-side sync layer."""

__version__ = "0.1.0"
