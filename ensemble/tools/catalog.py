"""
Catalog of external tools agents may be granted.

Tools here are not executed by Ensemble: their definitions are attached to an
agent's completion request and the completion service runs them natively.
An agent's ``tools`` labels are resolved against the catalog by name; labels
with no catalog entry stay descriptive text in the agent prompt only.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field
from pydantic.json_schema import model_json_schema

from ensemble.team.models import BucketCategory, BucketItem
from ensemble.types import ToolDefinition, ToolDefinitions

logger = logging.getLogger(__name__)


class WebSearchParams(BaseModel):
    """Parameters for the web_search tool."""

    query: str = Field(..., description="Search query")
    max_results: int = Field(
        10,
        ge=1,
        le=20,
        description="Maximum results to return (default: 10)",
    )


class WebFetchParams(BaseModel):
    """Parameters for the web_fetch tool."""

    url: str = Field(..., description="URL to fetch (must be http:// or https://)")
    timeout: int = Field(
        30,
        ge=5,
        le=120,
        description="Request timeout in seconds (default: 30)",
    )


class CodeExecutionParams(BaseModel):
    """Parameters for the code_execution tool."""

    code: str = Field(..., description="Python source to run in a sandbox")


class CatalogTool(BaseModel):
    """
    One external tool definition.

    Parameters
    ----------
    name : str
        Tool name; also the bucket label that grants it.
    description : str
        Description shown to the model.
    params : type[BaseModel]
        Pydantic model describing the arguments.
    """

    name: str
    description: str
    params: type[BaseModel]

    def to_definition(self) -> ToolDefinition:
        """
        Convert to a ``{"name", "description", "parameters"}`` definition.

        Examples
        --------
        >>> DEFAULT_TOOLS[0].to_definition()["parameters"]["required"]
        ['query']
        """
        json_schema: dict[str, Any] = model_json_schema(self.params, mode="serialization")
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": json_schema.get("properties", {}),
                "required": json_schema.get("required", []),
            },
        }


DEFAULT_TOOLS: tuple[CatalogTool, ...] = (
    CatalogTool(
        name="web_search",
        description=(
            "Search the web for information. "
            "Returns search results with titles, URLs and snippets"
        ),
        params=WebSearchParams,
    ),
    CatalogTool(
        name="web_fetch",
        description="Fetch the content of a web page by URL",
        params=WebFetchParams,
    ),
    CatalogTool(
        name="code_execution",
        description="Run Python code in a sandbox and return its output",
        params=CodeExecutionParams,
    ),
)


class ToolCatalog:
    """
    Registry of external tool definitions keyed by name.

    Parameters
    ----------
    tools : list[CatalogTool] | None, optional
        Tools to register. Defaults to ``DEFAULT_TOOLS``.

    Examples
    --------
    >>> catalog = ToolCatalog()
    >>> [d["name"] for d in catalog.resolve(["web_search", "whiteboard"])]
    ['web_search']
    """

    def __init__(self, tools: list[CatalogTool] | None = None) -> None:
        self._tools: dict[str, CatalogTool] = {}
        for tool in tools if tools is not None else DEFAULT_TOOLS:
            self.register(tool)

    def register(self, tool: CatalogTool) -> None:
        if tool.name in self._tools:
            logger.warning(f"Overwriting existing catalog tool: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> CatalogTool | None:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def resolve(self, labels: list[str]) -> ToolDefinitions:
        """
        Map tool labels to definitions, skipping labels not in the catalog.

        Parameters
        ----------
        labels : list[str]
            An agent's ``tools`` labels.

        Returns
        -------
        ToolDefinitions
            Definitions in label order, without duplicates.
        """
        definitions: ToolDefinitions = []
        seen: set[str] = set()
        for label in labels:
            tool = self._tools.get(label)
            if tool is None or label in seen:
                continue
            seen.add(label)
            definitions.append(tool.to_definition())
        return definitions

    def seed_bucket_items(self, existing: list[BucketItem]) -> list[BucketItem]:
        """
        Return tool bucket items for catalog tools missing from ``existing``.

        Parameters
        ----------
        existing : list[BucketItem]
            Current bucket contents.

        Returns
        -------
        list[BucketItem]
            New ``tool`` items, one per catalog tool whose name is not
            already a tool label in the bucket.
        """
        present: set[str] = {
            item.label for item in existing if item.category == BucketCategory.TOOL
        }
        return [
            BucketItem(
                category=BucketCategory.TOOL,
                label=tool.name,
                content=tool.description,
            )
            for tool in self._tools.values()
            if tool.name not in present
        ]
