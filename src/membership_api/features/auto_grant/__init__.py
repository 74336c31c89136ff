"""Automatic sub-role grants driven by order approval and initiations."""

from .service import AutoGrantResult, AutoGrantService
from .tasks import (
    INITIATION_TASK,
    PURCHASE_TASK,
    AutoGrantProcessor,
    process_auto_grant,
    register_auto_grant_handlers,
    schedule_auto_grant,
)

__all__ = [
    "INITIATION_TASK",
    "PURCHASE_TASK",
    "AutoGrantProcessor",
    "AutoGrantResult",
    "AutoGrantService",
    "process_auto_grant",
    "register_auto_grant_handlers",
    "schedule_auto_grant",
]
