"""Atomic publication and buffer lifecycle."""

from css_bundle.publish.layout import (
    BACKUP_BUFFER_NAME,
    MAIN_LINK_NAME,
    SHADOW_LINK_NAME,
    TEMP_BUFFER_NAME,
    OutputLayout,
)
from css_bundle.publish.lifecycle import DEFAULT_SIGNALS, BufferHandles, install_exit_hooks
from css_bundle.publish.publisher import AtomicPublisher

__all__ = [
    "BACKUP_BUFFER_NAME",
    "MAIN_LINK_NAME",
    "SHADOW_LINK_NAME",
    "TEMP_BUFFER_NAME",
    "OutputLayout",
    "DEFAULT_SIGNALS",
    "BufferHandles",
    "install_exit_hooks",
    "AtomicPublisher",
]
