"""Remote GPU-backed Jupyter servers from Thunder Compute."""

__version__ = "0.1.0"
