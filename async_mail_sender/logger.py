"""Logging helpers for the async mail sender."""

import logging

def get_logger(name: str = "AsyncMailSender") -> logging.Logger:
    """Return the named :class:`logging.Logger` instance.

    Note: the library never installs handlers. Configure logging via
    logging.basicConfig() in the entry point (see cli.py).
    """
    return logging.getLogger(name)
