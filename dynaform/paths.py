"""Path helpers for reading and writing nested form values.

Paths use dot notation with optional bracket indices, e.g. ``address.city``
or ``contacts[1].email``. Reads never raise for missing segments, and writes
are copy-on-write: the input structure is never mutated, a new structure
sharing untouched branches is returned instead. The root form cell relies on
this so that every write produces a new value its equality check can see.
"""

import copy
import re
from typing import Any, List, Sequence, Union

PathSegment = Union[str, int]

_SEGMENT_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

MISSING: Any = object()


def parse_path(path: Union[str, Sequence[PathSegment]]) -> List[PathSegment]:
    """Split a path string into keys and integer indices.

    Examples:
        >>> parse_path("contacts[1].email")
        ['contacts', 1, 'email']
        >>> parse_path("a?.b")
        ['a', 'b']
    """
    if not isinstance(path, str):
        return list(path)
    segments: List[PathSegment] = []
    for name, index in _SEGMENT_RE.findall(path.replace("?.", ".")):
        if index:
            segments.append(int(index))
        elif name:
            segments.append(name)
    return segments


def format_path(segments: Sequence[PathSegment]) -> str:
    """Inverse of parse_path.

    Examples:
        >>> format_path(['contacts', 1, 'email'])
        'contacts[1].email'
    """
    out = ""
    for segment in segments:
        if isinstance(segment, int):
            out += f"[{segment}]"
        else:
            out += f".{segment}" if out else str(segment)
    return out


def _child(container: Any, segment: PathSegment) -> Any:
    if isinstance(container, dict):
        if segment in container:
            return container[segment]
        if isinstance(segment, int) and str(segment) in container:
            return container[str(segment)]
        return MISSING
    if isinstance(container, (list, tuple)):
        if isinstance(segment, str):
            if not segment.isdigit():
                return MISSING
            segment = int(segment)
        if 0 <= segment < len(container):
            return container[segment]
    return MISSING


def has_path(obj: Any, path: Union[str, Sequence[PathSegment]]) -> bool:
    """Return True if every segment of path exists in obj (None counts)."""
    current = obj
    for segment in parse_path(path):
        current = _child(current, segment)
        if current is MISSING:
            return False
    return True


def get_path(obj: Any, path: Union[str, Sequence[PathSegment]], default: Any = None) -> Any:
    """Read a nested value, returning default for any missing segment.

    Examples:
        >>> get_path({"a": {"b": [10, 20]}}, "a.b[1]")
        20
        >>> get_path({"a": None}, "a.b.c", "n/a")
        'n/a'
    """
    current = obj
    for segment in parse_path(path):
        current = _child(current, segment)
        if current is MISSING:
            return default
    return current


def set_path(obj: Any, path: Union[str, Sequence[PathSegment]], value: Any) -> Any:
    """Return a copy of obj with value written at path.

    Intermediate containers are created as dicts, or lists when the next
    segment is an index. Lists are padded with None when writing past the end.

    Examples:
        >>> original = {"a": {"b": 1}}
        >>> updated = set_path(original, "a.c", 2)
        >>> updated
        {'a': {'b': 1, 'c': 2}}
        >>> original
        {'a': {'b': 1}}
    """
    segments = parse_path(path)
    if not segments:
        return value
    return _set(obj, segments, value)


def _set(container: Any, segments: List[PathSegment], value: Any) -> Any:
    head, rest = segments[0], segments[1:]
    if isinstance(head, int):
        result: Any = list(container) if isinstance(container, (list, tuple)) else []
        while len(result) <= head:
            result.append(None)
    else:
        result = dict(container) if isinstance(container, dict) else {}
    if rest:
        child = _child(result, head)
        result[head] = _set(None if child is MISSING else child, rest, value)
    else:
        result[head] = value
    return result


def delete_path(obj: Any, path: Union[str, Sequence[PathSegment]]) -> Any:
    """Return a copy of obj without the key (or list item) at path."""
    segments = parse_path(path)
    if not segments or not has_path(obj, segments):
        return obj
    parent_path, last = segments[:-1], segments[-1]
    parent = get_path(obj, parent_path) if parent_path else obj
    if isinstance(parent, dict):
        new_parent: Any = {k: v for k, v in parent.items() if k != last}
    else:
        new_parent = [v for i, v in enumerate(parent) if i != int(last)]
    return set_path(obj, parent_path, new_parent) if parent_path else new_parent


def deep_merge(base: Any, override: Any) -> Any:
    """Merge override into a deep copy of base; override wins on conflicts.

    Only dicts are merged recursively; lists and scalars are replaced.

    Examples:
        >>> deep_merge({"a": 1, "b": {"c": 2, "d": 3}}, {"b": {"c": 9}})
        {'a': 1, 'b': {'c': 9, 'd': 3}}
    """
    if isinstance(base, dict) and isinstance(override, dict):
        merged = {k: copy.deepcopy(v) for k, v in base.items()}
        for key, value in override.items():
            merged[key] = deep_merge(merged[key], value) if key in merged else value
        return merged
    return override


__all__ = [
    "MISSING",
    "parse_path",
    "format_path",
    "has_path",
    "get_path",
    "set_path",
    "delete_path",
    "deep_merge",
]
