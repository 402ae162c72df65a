"""
acge_services -- side-channel services around the workflow kernel.

Currently the effect dispatcher and its sink protocols.  Nothing in this
package participates in a transition's transaction.
"""

from acge_services.effects import (
    CacheInvalidationSink,
    DispatchReport,
    EffectDispatcher,
    LoggingCacheInvalidationSink,
    LoggingNotificationSink,
    NotificationSink,
)

__all__ = [
    "CacheInvalidationSink",
    "DispatchReport",
    "EffectDispatcher",
    "LoggingCacheInvalidationSink",
    "LoggingNotificationSink",
    "NotificationSink",
]
