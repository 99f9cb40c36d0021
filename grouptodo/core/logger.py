"""Shared logger for the grouptodo packages.

Callers attach structured context with ``extra={...}``; the formatter appends
any such fields to the rendered line so they survive plain-text log sinks.
"""

import logging
import os
import sys

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord('', 0, '', 0, '', (), None).__dict__.keys()
) | {'message', 'asctime'}


class ExtraFieldsFormatter(logging.Formatter):
    """Formatter that renders `extra` fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith('_')
        }
        if not extras:
            return base
        rendered = ' '.join(f'{key}={value!r}' for key, value in sorted(extras.items()))
        return f'{base} | {rendered}'


def get_logger(name: str = 'grouptodo') -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            ExtraFieldsFormatter('%(asctime)s - %(name)s:%(levelname)s: %(message)s')
        )
        logger.addHandler(handler)
        logger.setLevel(LOG_LEVEL)
        logger.propagate = False
    return logger


grouptodo_logger = get_logger()
