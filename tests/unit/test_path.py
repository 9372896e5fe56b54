"""
PathResolver Unit Tests

Tests path syntax and read/write semantics of dotted / bracket paths
"""

import pytest

from vschema.core.path import PathResolver, PathSegment
from vschema.exceptions.errors import MappingError


class TestPathParse:
    """Test path parsing"""

    def test_parse_simple_field(self):
        """Test simple field path"""
        segments = PathResolver.parse("a")
        assert len(segments) == 1
        assert segments[0].key == "a"
        assert not segments[0].is_array_index()

    def test_parse_mixed_path(self):
        """Test mixed path"""
        segments = PathResolver.parse("a[0].b[1].c")
        assert [seg.key for seg in segments] == ["a", 0, "b", 1, "c"]
        assert segments[1].is_array_index()

    def test_parse_chained_indices(self):
        """Test consecutive index segments"""
        segments = PathResolver.parse("grid[0][1]")
        assert [seg.key for seg in segments] == ["grid", 0, 1]

    def test_parse_reserved_prefix(self):
        """Test `$`-prefixed keys"""
        segments = PathResolver.parse("$methods.$nav.push")
        assert [seg.key for seg in segments] == ["$methods", "$nav", "push"]

    def test_parse_empty(self):
        """Test empty path"""
        assert PathResolver.parse("") == []

    @pytest.mark.parametrize("path", ["a..b", "a[x]", "a[-1]", "a.", "a[0"])
    def test_parse_invalid_syntax(self, path):
        """Test invalid syntax"""
        with pytest.raises(MappingError):
            PathResolver.parse(path)

    def test_join_round_trip(self):
        """Test rendering segments back to text"""
        assert PathResolver.join(PathResolver.parse("a.b[0].c")) == "a.b[0].c"
        assert PathResolver.join([PathSegment("x"), PathSegment(2)]) == "x[2]"


class TestPathGet:
    """Test path read"""

    def test_get_nested_field(self):
        """Test reading nested field"""
        assert PathResolver.get({"a": {"b": {"c": 42}}}, "a.b.c") == 42

    def test_get_array_element(self):
        """Test reading array element"""
        assert PathResolver.get({"arr": [{"x": 1}, {"x": 2}]}, "arr[1].x") == 2

    def test_get_missing_returns_none(self):
        """Test missing path"""
        assert PathResolver.get({"a": 1}, "b.c") is None

    def test_get_index_on_non_array(self):
        """Test index segment against a non-array value is a miss"""
        assert PathResolver.get({"a": {"0": 1}}, "a[0]") is None

    def test_get_null_root_and_empty_path(self):
        """Test None root and empty path"""
        assert PathResolver.get(None, "a") is None
        assert PathResolver.get({"a": 1}, "") is None

    def test_get_malformed_path_is_miss(self):
        """Test malformed path never raises on read"""
        assert PathResolver.get({"a": 1}, "a..b") is None


class TestPathHas:
    """Test path existence checks"""

    def test_has_existing_none_value(self):
        """Test a key holding None exists"""
        assert PathResolver.has({"a": None}, "a")

    def test_has_missing(self):
        """Test missing key and out-of-range index"""
        assert not PathResolver.has({"a": [1]}, "a[3]")
        assert not PathResolver.has({"a": 1}, "b")

    def test_has_has_no_side_effects(self):
        """Test has does not create containers"""
        obj = {}
        PathResolver.has(obj, "a.b.c")
        assert obj == {}


class TestPathSet:
    """Test path write"""

    def test_set_creates_intermediate_objects(self):
        """Test auto-creating objects"""
        obj = {}
        PathResolver.set(obj, "a.b.c", 1)
        assert obj == {"a": {"b": {"c": 1}}}

    def test_set_creates_arrays_for_index_segments(self):
        """Test auto-creating arrays and padding with None"""
        obj = {}
        PathResolver.set(obj, "items[2].name", "x")
        assert obj == {"items": [None, None, {"name": "x"}]}

    def test_set_type_conflict(self):
        """Test writing through a scalar"""
        with pytest.raises(MappingError):
            PathResolver.set({"a": 5}, "a.b", 1)

    def test_set_array_limit(self):
        """Test max array length"""
        with pytest.raises(MappingError):
            PathResolver.set({"a": []}, "a[50]", 1, max_array_length=10)

    def test_set_noop_on_empty_path(self):
        """Test empty path and None root"""
        obj = {"a": 1}
        PathResolver.set(obj, "", 2)
        PathResolver.set(None, "a", 2)
        assert obj == {"a": 1}

    @pytest.mark.parametrize(
        "path",
        ["a", "a.b", "a[0]", "a.b[1].c", "a[0][1].b.c", "x.y[2].z[0].w"],
    )
    def test_set_then_get_round_trip(self, path):
        """Test set followed by get returns the written value"""
        obj = {}
        value = {"marker": path}
        PathResolver.set(obj, path, value)
        assert PathResolver.get(obj, path) is value


class TestPathIntersect:
    """Test path intersection used for dependency tracking"""

    def test_prefix_intersects(self):
        """Test ancestor and descendant"""
        assert PathResolver.intersect("a", "a.b")
        assert PathResolver.intersect("a.b", "a")
        assert PathResolver.intersect("a", "a[1]")

    def test_siblings_do_not_intersect(self):
        """Test sibling keys and indices"""
        assert not PathResolver.intersect("a[0]", "a[1]")
        assert not PathResolver.intersect("a.b", "a.c")

    def test_is_prefix(self):
        """Test directional prefix check"""
        assert PathResolver.is_prefix("a", "a.b")
        assert not PathResolver.is_prefix("a.b", "a")
        assert PathResolver.is_prefix("", "a")
