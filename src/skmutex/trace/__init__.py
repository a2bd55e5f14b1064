"""
Protocol trace: human-readable lines for every protocol event.

- ProtocolTrace: bounded, newest-first trace buffer fed by engine events
- format_event: one event -> one trace line (or None)
"""

from skmutex.trace.log import ProtocolTrace, format_event, DEFAULT_MAX_LINES

__all__ = [
    "ProtocolTrace",
    "format_event",
    "DEFAULT_MAX_LINES",
]
