"""Logging subsystem for SMIMECA.

Public API::

    from smimeca.logging import configure_logging

    configure_logging(settings.logging, log_file=settings.log_file)
"""

from smimeca.logging.setup import configure_logging

__all__ = ["configure_logging"]
