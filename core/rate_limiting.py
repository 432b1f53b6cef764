"""
In-memory rate limiting for API protection.
"""
import time
from collections import defaultdict
from typing import Any, Dict, Optional
from fastapi import Request

from core.config import settings
from core.exceptions import RateLimitException
from core.logging import get_logger

logger = get_logger("security")


class RateLimiter:
    """Fixed-window, in-memory rate limiter with named policies."""

    def __init__(self):
        # {key: {"count": int, "window_start": float, "blocked_until": float}}
        self.storage: Dict[str, Dict[str, Any]] = defaultdict(lambda: {
            "count": 0,
            "window_start": time.time(),
            "blocked_until": 0
        })

        self.policies = {
            "default": {"requests": 120, "window": 60},
            "auth": {"requests": 10, "window": 60},
            "llm": {"requests": 60, "window": 3600},
            "file_upload": {"requests": 30, "window": 3600},
            "share": {"requests": 30, "window": 3600},
            "admin": {"requests": 1000, "window": 60},
        }

    def _get_client_key(self, request: Request, user_id: Optional[int] = None) -> str:
        if user_id:
            return f"user_{user_id}"

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
        else:
            client_ip = request.client.host if request.client else "unknown"
        return f"ip_{client_ip}"

    def is_allowed(
        self,
        request: Request,
        policy_name: str = "default",
        user_id: Optional[int] = None,
    ) -> tuple[bool, Dict[str, Any]]:
        """Check whether one more request fits the policy window."""
        policy_name = policy_name if policy_name in self.policies else "default"
        policy = self.policies[policy_name]
        rate_key = f"{policy_name}_{self._get_client_key(request, user_id)}"

        current_time = time.time()
        client_data = self.storage[rate_key]

        if client_data["blocked_until"] > current_time:
            return False, {"retry_after": int(client_data["blocked_until"] - current_time) + 1}

        if current_time - client_data["window_start"] >= policy["window"]:
            client_data["count"] = 0
            client_data["window_start"] = current_time
            client_data["blocked_until"] = 0

        if client_data["count"] >= policy["requests"]:
            window_end = client_data["window_start"] + policy["window"]
            client_data["blocked_until"] = window_end
            return False, {"retry_after": int(window_end - current_time) + 1}

        client_data["count"] += 1
        return True, {"requests_remaining": policy["requests"] - client_data["count"]}

    def cleanup_expired(self) -> int:
        """Drop windows older than an hour that are not blocking anyone."""
        current_time = time.time()
        expired_keys = [
            key for key, data in self.storage.items()
            if current_time - data["window_start"] > 3600 and data["blocked_until"] <= current_time
        ]
        for key in expired_keys:
            del self.storage[key]
        return len(expired_keys)

    def reset(self):
        self.storage.clear()


# Global rate limiter instance
rate_limiter = RateLimiter()


def check_rate_limit(request: Request, policy: str = "default", user_id: Optional[int] = None) -> Dict[str, Any]:
    """Raise RateLimitException when the caller is over ``policy``."""
    if not settings.enable_rate_limiting:
        return {}
    allowed, info = rate_limiter.is_allowed(request, policy, user_id)
    if not allowed:
        logger.warning("Rate limit exceeded", policy=policy, path=str(request.url.path), user_id=user_id)
        raise RateLimitException(retry_after=info.get("retry_after", 60))
    return info


def rate_limit(policy: str):
    """FastAPI dependency factory: ``Depends(rate_limit("llm"))``."""

    async def dependency(request: Request):
        return check_rate_limit(request, policy)

    return dependency
