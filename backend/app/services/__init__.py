"""Application service helpers."""

from .cache import get_account_cache, get_cache, remove_user_cache_by_user_ids
from .permissions import can_send_message, effective_role_permissions, evaluate_send_permission
from .rate_limit import RateLimitDecision, get_rate_limiter

__all__ = [
    "get_account_cache",
    "get_cache",
    "remove_user_cache_by_user_ids",
    "can_send_message",
    "effective_role_permissions",
    "evaluate_send_permission",
    "RateLimitDecision",
    "get_rate_limiter",
]
