"""
Serialization Utilities

Converts domain dataclasses into JSON-ready dictionaries for API responses
and ledger metadata, handling enums, dates and nested dataclasses.
"""

import json
import datetime
from enum import Enum
from typing import Any, Dict, List
from dataclasses import is_dataclass, fields


def serialize(obj: Any) -> Any:
    """
    Serialize an object into plain JSON-compatible Python values.

    Args:
        obj: The object to serialize

    Returns:
        Dicts, lists, strings, numbers, booleans or None
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (list, tuple, set, frozenset)):
        return [serialize(item) for item in obj]

    if isinstance(obj, dict):
        return {
            (key.value if isinstance(key, Enum) else str(key)): serialize(value)
            for key, value in obj.items()
        }

    if hasattr(obj, 'to_dict') and callable(getattr(obj, 'to_dict')):
        return serialize(obj.to_dict())

    if is_dataclass(obj):
        return {f.name: serialize(getattr(obj, f.name)) for f in fields(obj)}

    return str(obj)


def to_json(obj: Any, pretty: bool = False) -> str:
    """Serialize an object to a JSON string."""
    return json.dumps(serialize(obj), indent=2 if pretty else None, ensure_ascii=False)


class SerializableMixin:
    """
    Mixin that provides ``to_dict`` for dataclasses.

    Classes may set ``__serializable_fields__`` to restrict and order the
    emitted fields; by default every dataclass field is emitted.
    """

    __serializable_fields__: List[str] = []

    def to_dict(self) -> Dict[str, Any]:
        names = self.__serializable_fields__ or [f.name for f in fields(self)]
        return {name: serialize(getattr(self, name)) for name in names if hasattr(self, name)}

    def to_json(self, pretty: bool = False) -> str:
        return to_json(self.to_dict(), pretty)
