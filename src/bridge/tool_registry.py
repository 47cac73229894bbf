"""
Tool Registry for the MCP bridge

Holds the tool descriptors discovered from the backend. The registry never
mutates its snapshot in place: a refresh builds a new read-only mapping and
swaps the reference, so a lookup or listing always sees one complete set.
"""

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from common.logging import get_logger
from .http_client import BackendClient, BackendError

logger = get_logger(__name__)

TOOLS_PATH = "/tools"


class ToolParameter(BaseModel):
    """One parameter of a backend tool. Extra schema keys are kept as-is."""

    model_config = ConfigDict(extra="allow", frozen=True)

    type: Optional[str] = "string"
    description: Optional[str] = ""
    required: bool = False

    def to_schema(self) -> Dict[str, Any]:
        """JSON Schema for this parameter; null type/description get defaults."""
        schema = self.model_dump(exclude={"required"})
        schema["type"] = self.type or "string"
        schema["description"] = self.description or ""
        return schema


class ToolDescriptor(BaseModel):
    """Backend-supplied description of one invokable tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = ""
    parameters: Dict[str, ToolParameter] = Field(default_factory=dict)

    def required_parameters(self) -> List[str]:
        return [name for name, param in self.parameters.items() if param.required]

    def to_mcp_tool(self) -> Dict[str, Any]:
        """Render as an MCP tool schema entry."""
        properties = {name: param.to_schema() for name, param in self.parameters.items()}
        return {
            "name": self.name,
            "description": self.description or "",
            "inputSchema": {
                "type": "object",
                "properties": properties,
                "required": self.required_parameters(),
            },
        }


class ToolListing(BaseModel):
    """Body of ``GET /tools``. Entries are validated one by one."""

    tools: List[Any]


class ToolRegistry:
    """
    Cache of backend tool descriptors keyed by name.

    Owned by the dispatcher; refreshed wholesale from the backend.
    """

    def __init__(self, client: BackendClient):
        self.client = client
        self._tools: Mapping[str, ToolDescriptor] = MappingProxyType({})

    async def refresh(self) -> List[ToolDescriptor]:
        """
        Fetch the tool listing and replace the snapshot.

        A descriptor that fails validation is skipped and logged; the rest
        of the listing is still published.

        Raises:
            BackendError: the request failed or the body carried no tool list.
                The current snapshot is left untouched.
        """
        payload = await self.client.get(TOOLS_PATH)

        try:
            listing = ToolListing.model_validate(payload)
        except ValidationError as e:
            raise BackendError(f"Invalid tool listing: {e}")

        tools: Dict[str, ToolDescriptor] = {}
        for index, item in enumerate(listing.tools):
            try:
                tool = ToolDescriptor.model_validate(item)
            except ValidationError as e:
                logger.warning(
                    event="tool_descriptor_skipped",
                    index=index,
                    error=str(e),
                )
                continue
            tools[tool.name] = tool

        self._tools = MappingProxyType(tools)

        logger.info(event="tools_discovered", tool_count=len(self._tools))
        return list(self._tools.values())

    def lookup(self, name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(name)

    def list_tools(self) -> List[ToolDescriptor]:
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
