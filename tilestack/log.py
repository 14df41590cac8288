"""
Logging configuration for the command line tools.

Library modules only create module loggers with logging.getLogger(__name__);
handlers are installed by the application at start-up:

    from tilestack.log import setup_logging
    setup_logging("INFO")
"""

import logging
import sys

DEFAULT_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level='INFO', stream=None, format_string=None):
    """
    Install a single stream handler on the package logger.

    Args:
        level: logging level name or number
        stream: output stream, stderr by default
        format_string: record format, DEFAULT_FORMAT if not given

    Returns:
        logging.Logger: the configured 'tilestack' logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT, DATE_FORMAT))

    logger = logging.getLogger('tilestack')
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
