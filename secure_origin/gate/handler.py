"""
Serverless Handler Wrapper
==========================
Guards a function-URL style handler `handler(event, context)`.

Usage:
    gate = OriginRequestGate.from_settings(Settings.from_env())

    @secure_handler(gate)
    async def handler(event, context):
        return {"statusCode": 200, "body": "..."}
"""

import inspect
from functools import wraps
from typing import Any, Callable, Dict

from .gate import OriginRequestGate, serverless_response


def secure_handler(gate: OriginRequestGate):
    """Decorator: run the wrapped handler only for accepted requests."""
    def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(handler)
        async def wrapper(event: Dict[str, Any], context: Any = None) -> Any:
            verdict = await gate.authorize(event.get("headers") or {})
            if not verdict.accepted:
                return serverless_response(verdict)

            result = handler(event, context)
            if inspect.isawaitable(result):
                result = await result
            return result
        return wrapper
    return decorator
