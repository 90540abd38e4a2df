from __future__ import annotations

from pydantic import BaseModel

from ensemble.team.models import BucketCategory, BucketItem
from ensemble.tools.catalog import CatalogTool, ToolCatalog
from ensemble.utils.text import Tokenizer, truncate_preview


class WhiteboardParams(BaseModel):
    note: str


def test_default_catalog_tools() -> None:
    assert ToolCatalog().names == ["web_search", "web_fetch", "code_execution"]


def test_definition_carries_parameter_schema() -> None:
    definition = ToolCatalog().get("web_search").to_definition()

    assert definition["name"] == "web_search"
    assert definition["parameters"]["type"] == "object"
    assert definition["parameters"]["required"] == ["query"]
    assert "max_results" in definition["parameters"]["properties"]


def test_resolve_skips_unknown_and_duplicate_labels() -> None:
    catalog = ToolCatalog()

    resolved = catalog.resolve(["web_fetch", "whiteboard", "web_fetch", "web_search"])

    assert [d["name"] for d in resolved] == ["web_fetch", "web_search"]


def test_custom_tool_registration() -> None:
    catalog = ToolCatalog(tools=[])
    catalog.register(CatalogTool(name="whiteboard", description="Shared notes", params=WhiteboardParams))

    assert catalog.names == ["whiteboard"]
    assert catalog.resolve(["whiteboard"])[0]["parameters"]["required"] == ["note"]


def test_seed_bucket_items_adds_missing_tools_only() -> None:
    existing = [
        BucketItem(category="tool", label="web_search"),
        BucketItem(category="skill", label="web_fetch"),
    ]

    seeded = ToolCatalog().seed_bucket_items(existing)

    assert [item.label for item in seeded] == ["web_fetch", "code_execution"]
    assert all(item.category == BucketCategory.TOOL for item in seeded)
    assert seeded[0].content


def test_truncate_preview() -> None:
    assert truncate_preview("abc", 3) == "abc"
    assert truncate_preview("abcdef", 3) == "abc..."
    assert truncate_preview("", 0) == ""


def test_token_count() -> None:
    tokenizer = Tokenizer("gpt-4o")

    assert tokenizer.count_tokens("") == 0
    assert tokenizer.count_tokens("hello world") >= 1
