import json
from typing import Any


def truncate(value: Any, limit: int = 100) -> str:
    """Shorten a value for log output, appending '...' when it was cut.

    Non-string values are serialized to JSON first.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        try:
            value = json.dumps(value, default=str)
        except (TypeError, ValueError):
            value = str(value)
    if len(value) > limit:
        return value[:limit] + "..."
    return value


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")
