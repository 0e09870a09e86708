# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Shared dostorage components.
"""

__all__ = [
    'auto_threaded',
    'poll_until', 'with_retry', 'retry_if', 'fixed_retry_steps',
    'LoopExceeded',
]

from ._thread import auto_threaded
from ._retry import (
    poll_until, with_retry, retry_if, fixed_retry_steps, LoopExceeded,
)
