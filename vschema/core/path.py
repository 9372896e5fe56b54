"""
State Path Resolver

Path syntax and read/write semantics for state trees:
- . accesses object fields
- [n] accesses array indices
- Paths are relative to the scope state: "user.items[0].name"
- Automatically creates intermediate objects/arrays on write
"""

import re
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, List, Tuple, Union

from ..exceptions.errors import MappingError


class PathSegment:
    """Path segment"""

    __slots__ = ("key",)

    def __init__(self, key: Union[str, int]):
        self.key = key

    def is_array_index(self) -> bool:
        return isinstance(self.key, int)

    def get_key(self) -> Union[str, int]:
        """Get key value, type-safe"""
        return self.key

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PathSegment) and self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self):
        if self.is_array_index():
            return f"[{self.key}]"
        return f".{self.key}"


_FIELD = r"(?P<field>[^.\[\]\s]+)"
_INDEX = r"\[(?P<index>\d+)\]"

FIRST_SEGMENT_PATTERN = re.compile(_FIELD + "|" + _INDEX)
SEGMENT_PATTERN = re.compile(r"\." + _FIELD + "|" + _INDEX)


@lru_cache(maxsize=2048)
def _parse(path: str) -> Tuple[PathSegment, ...]:
    segments = []
    pattern = FIRST_SEGMENT_PATTERN
    rest = path

    while rest:
        match = pattern.match(rest)
        if not match:
            raise MappingError(f"Invalid path syntax at: {rest}", {"path": path})

        if match.group("field") is not None:
            segments.append(PathSegment(match.group("field")))
        else:
            segments.append(PathSegment(int(match.group("index"))))

        rest = rest[match.end() :]
        pattern = SEGMENT_PATTERN

    return tuple(segments)


class PathResolver:
    """
    Path Resolver

    Supported syntax:
    - a.b.c      -> Object field access
    - a[0]       -> Array index access
    - a.b[0].c   -> Mixed access
    - grid[0][1] -> Chained indices
    """

    @classmethod
    def parse(cls, path: str) -> List[PathSegment]:
        """
        Parse path string into path segment list

        Args:
            path: Path string, e.g. "a.b[0]"

        Returns:
            List of PathSegments (empty for an empty path)

        Raises:
            MappingError: Invalid path format
        """
        if not path:
            return []
        return list(_parse(path))

    @classmethod
    def join(cls, segments: List[PathSegment]) -> str:
        """Render segments back to canonical path text"""
        parts = []
        for seg in segments:
            if seg.is_array_index():
                parts.append(f"[{seg.key}]")
            elif parts:
                parts.append(f".{seg.key}")
            else:
                parts.append(str(seg.key))
        return "".join(parts)

    @classmethod
    def get(cls, obj: Any, path: str) -> Any:
        """
        Read path value

        Returns None when the path does not exist, the root is None, or an
        index segment meets a non-array value. Never raises.

        Args:
            obj: Root object (typically dict)
            path: Path string

        Returns:
            Value at path, or None if not found
        """
        if obj is None or not path:
            return None

        try:
            segments = _parse(path)
        except MappingError:
            return None

        current = obj
        for seg in segments:
            if current is None:
                return None

            if seg.is_array_index():
                if not isinstance(current, (list, tuple)):
                    return None
                idx = seg.key
                if idx >= len(current):
                    return None
                current = current[idx]
            else:
                if not isinstance(current, Mapping):
                    return None
                current = current.get(seg.key)

        return current

    @classmethod
    def has(cls, obj: Any, path: str) -> bool:
        """
        Check whether every segment of the path exists

        A key holding None still exists. No side effects.
        """
        if obj is None or not path:
            return False

        try:
            segments = _parse(path)
        except MappingError:
            return False

        current = obj
        for seg in segments:
            if seg.is_array_index():
                if not isinstance(current, (list, tuple)) or seg.key >= len(current):
                    return False
                current = current[seg.key]
            else:
                if not isinstance(current, Mapping) or seg.key not in current:
                    return False
                current = current[seg.key]

        return True

    @classmethod
    def set(
        cls, obj: Any, path: str, value: Any, max_array_length: int = 10000
    ) -> None:
        """
        Set path value

        - Automatically create {} when intermediate object is missing
        - Automatically create [] when the next segment is an index
        - Fill with None when array index is out of bounds
        - Produce MappingError when intermediate position is not object/array

        Empty path or None root is a no-op.

        Args:
            obj: Root object (dict or list)
            path: Path string
            value: Value to set
            max_array_length: Maximum array length limit

        Raises:
            MappingError: Invalid path or type conflict
        """
        if obj is None or not path:
            return

        segments = _parse(path)

        # Iterate to second-to-last segment, create intermediate objects/arrays
        current = obj
        for i, seg in enumerate(segments[:-1]):
            next_seg = segments[i + 1]
            container = [] if next_seg.is_array_index() else {}

            if seg.is_array_index():
                if not isinstance(current, list):
                    raise MappingError(
                        f"Expected list at path segment {seg}", {"path": path}
                    )
                cls._ensure_length(current, seg.key, max_array_length, path)
                if current[seg.key] is None:
                    current[seg.key] = container
            else:
                if not isinstance(current, dict):
                    raise MappingError(
                        f"Expected object at path segment {seg}", {"path": path}
                    )
                if current.get(seg.key) is None:
                    current[seg.key] = container

            # Re-read so observable containers return their wrapped child
            current = current[seg.key]

        # Set final value
        last_seg = segments[-1]
        if last_seg.is_array_index():
            if not isinstance(current, list):
                raise MappingError(
                    f"Expected list at final path segment {last_seg}", {"path": path}
                )
            cls._ensure_length(current, last_seg.key, max_array_length, path)
        elif not isinstance(current, dict):
            raise MappingError(
                f"Expected object at final path segment {last_seg}", {"path": path}
            )

        current[last_seg.key] = value

    @classmethod
    def intersect(cls, path_a: str, path_b: str) -> bool:
        """
        Check if two paths intersect

        - One path is a prefix of another (a vs a.b)
        - Two paths are identical
        - a[0] vs a[1] do not intersect
        - a vs a[1] intersect
        - The empty path (whole state) intersects everything

        Args:
            path_a: First path
            path_b: Second path

        Returns:
            Whether paths intersect
        """
        try:
            segs_a = _parse(path_a) if path_a else ()
            segs_b = _parse(path_b) if path_b else ()
        except MappingError:
            return False

        for seg_a, seg_b in zip(segs_a, segs_b):
            if seg_a.key != seg_b.key:
                # Different keys at same position -> no intersection
                return False

        # All corresponding segments are same, or one is prefix of other -> intersect
        return True

    @classmethod
    def is_prefix(cls, prefix: str, path: str) -> bool:
        """Check whether `prefix` addresses `path` itself or one of its ancestors"""
        try:
            segs_prefix = _parse(prefix) if prefix else ()
            segs_path = _parse(path) if path else ()
        except MappingError:
            return False

        if len(segs_prefix) > len(segs_path):
            return False
        return all(a.key == b.key for a, b in zip(segs_prefix, segs_path))

    @staticmethod
    def _ensure_length(
        current: list, idx: int, max_array_length: int, path: str
    ) -> None:
        if idx < len(current):
            return
        if idx >= max_array_length:
            raise MappingError(
                f"Array index {idx} exceeds max length {max_array_length}",
                {"threshold": max_array_length, "index": idx, "path": path},
            )
        # Fill with None
        current.extend([None] * (idx - len(current) + 1))
