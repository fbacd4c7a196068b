"""SMIMECA -- a small S/MIME certificate authority lifecycle manager."""

__version__ = "1.0.0"
