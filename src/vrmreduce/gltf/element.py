"""Dataclass <-> JSON mapping shared by the typed document schema.

Each schema class declares its modeled JSON keys with ``prop``. Keys that
are not modeled are kept verbatim in ``extra`` so that nothing is lost
across a load -> edit -> serialize cycle.
"""

import copy
from dataclasses import dataclass, field, fields
from typing import Any

from ..errors import FormatError


def prop(key: str, kind: type | None = None, many: bool = False, keep_empty: bool = False):
    """Declare a field mapped to JSON ``key``.

    Args:
        key: camelCase JSON key
        kind: Element subclass for nested objects, None for plain JSON values
        many: Field holds a list (defaults to empty, omitted when empty)
        keep_empty: Emit the key even when the list is empty
    """
    metadata = {"key": key, "kind": kind, "many": many, "keep_empty": keep_empty}
    if many:
        return field(default_factory=list, metadata=metadata)
    return field(default=None, metadata=metadata)


@dataclass
class Element:
    """Base for every schema object."""

    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, obj: Any):
        if not isinstance(obj, dict):
            raise FormatError(f"{cls.__name__} must be a JSON object, got {type(obj).__name__}")

        kwargs = {}
        known = set()
        for f in fields(cls):
            key = f.metadata.get("key")
            if key is None:
                continue
            known.add(key)
            if key not in obj or obj[key] is None:
                continue

            value = obj[key]
            kind = f.metadata["kind"]
            if f.metadata["many"]:
                if not isinstance(value, list):
                    raise FormatError(f"{cls.__name__}.{key} must be a JSON array")
                value = [kind.from_json(v) for v in value] if kind else copy.deepcopy(value)
            elif kind is not None:
                value = kind.from_json(value)
            else:
                value = copy.deepcopy(value)
            kwargs[f.name] = value

        extra = {k: copy.deepcopy(v) for k, v in obj.items() if k not in known}
        return cls(extra=extra, **kwargs)

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            key = f.metadata.get("key")
            if key is None:
                continue
            value = getattr(self, f.name)
            if value is None:
                continue

            kind = f.metadata["kind"]
            if f.metadata["many"]:
                if not value and not f.metadata["keep_empty"]:
                    continue
                value = [v.to_json() for v in value] if kind else copy.deepcopy(value)
            elif kind is not None:
                value = value.to_json()
            else:
                value = copy.deepcopy(value)
            out[key] = value

        out.update(copy.deepcopy(self.extra))
        return out
