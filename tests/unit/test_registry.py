"""Unit tests for the capability registry."""

import pytest

from toolbridge.errors import ProtocolError
from toolbridge.registry import CapabilityRegistry, ToolDescriptor, parse_tool_listing

GRADE = {
    "name": "grade_page",
    "description": "Grade a page",
    "inputSchema": {
        "type": "object",
        "properties": {"page": {"type": "integer"}, "strict": {"type": "boolean"}},
        "required": ["page"],
    },
}


class TestToolDescriptor:
    """Descriptor parsing."""

    def test_from_wire(self):
        """inputSchema maps to input_schema."""
        tool = ToolDescriptor.model_validate(GRADE)

        assert tool.name == "grade_page"
        assert tool.description == "Grade a page"
        assert tool.required_parameters == ["page"]
        assert set(tool.parameters) == {"page", "strict"}

    def test_defaults(self):
        """Description is optional and the schema defaults to an empty object."""
        tool = ToolDescriptor.model_validate({"name": "ping"})

        assert tool.description is None
        assert tool.input_schema == {"type": "object"}
        assert tool.required_parameters == []

    def test_extra_fields_kept(self):
        """Unknown descriptor keys survive a round trip."""
        tool = ToolDescriptor.model_validate({**GRADE, "annotations": {"readOnlyHint": True}})

        assert tool.model_dump(by_alias=True)["annotations"] == {"readOnlyHint": True}

    def test_dump_uses_wire_names(self):
        """Serialising by alias restores inputSchema."""
        dumped = ToolDescriptor.model_validate(GRADE).model_dump(by_alias=True)

        assert "inputSchema" in dumped


class TestParseToolListing:
    """Validation of tools/list results."""

    def test_valid_listing(self):
        """A tools list becomes descriptors in order."""
        tools = parse_tool_listing({"tools": [GRADE, {"name": "b"}]})

        assert [t.name for t in tools] == ["grade_page", "b"]

    def test_empty_listing(self):
        """An empty list is valid."""
        assert parse_tool_listing({"tools": []}) == []

    @pytest.mark.parametrize(
        "result",
        [None, [], {"items": []}, {"tools": {"name": "x"}}, {"tools": [{"description": "no name"}]}],
    )
    def test_unexpected_shapes(self, result):
        """Anything else is a ProtocolError."""
        with pytest.raises(ProtocolError):
            parse_tool_listing(result)


class TestCapabilityRegistry:
    """Snapshot replacement semantics."""

    def test_starts_empty(self):
        registry = CapabilityRegistry()

        assert len(registry) == 0
        assert registry.tools() == []

    def test_replace_does_not_merge(self):
        """A new listing fully replaces the old one."""
        registry = CapabilityRegistry()
        registry.replace(parse_tool_listing({"tools": [{"name": "a"}, {"name": "b"}]}))
        registry.replace(parse_tool_listing({"tools": [{"name": "c"}]}))

        assert registry.names() == ["c"]
        assert "a" not in registry

    def test_old_snapshot_unchanged(self):
        """Readers holding a snapshot keep seeing the complete old listing."""
        registry = CapabilityRegistry()
        registry.replace(parse_tool_listing({"tools": [{"name": "a"}]}))
        before = registry.snapshot()

        registry.replace(parse_tool_listing({"tools": [{"name": "b"}]}))

        assert list(before) == ["a"]
        assert list(registry.snapshot()) == ["b"]

    def test_snapshot_is_read_only(self):
        """The snapshot mapping cannot be mutated in place."""
        registry = CapabilityRegistry()

        with pytest.raises(TypeError):
            registry.snapshot()["x"] = ToolDescriptor(name="x")

    def test_duplicate_names_last_wins(self):
        """Duplicate names collapse to the last descriptor."""
        registry = CapabilityRegistry()
        registry.replace(
            parse_tool_listing(
                {"tools": [{"name": "a", "description": "old"}, {"name": "a", "description": "new"}]}
            )
        )

        assert len(registry) == 1
        assert registry.get("a").description == "new"

    def test_clear(self):
        registry = CapabilityRegistry()
        registry.replace([ToolDescriptor(name="a")])
        registry.clear()

        assert len(registry) == 0
        assert registry.get("a") is None
