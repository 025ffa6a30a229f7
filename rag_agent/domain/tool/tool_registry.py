from typing import Dict, List, Any, Optional

from langchain_core.tools import BaseTool


class ToolRegistry:
    """Registry for managing available tools"""

    def __init__(self, tools: Optional[List[BaseTool]] = None):
        self.tools: Dict[str, BaseTool] = {}
        self.tool_categories: Dict[str, List[str]] = {}

        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: BaseTool, category: str = "retrieval"):
        """Register a new tool"""

        if tool.name in self.tools:
            raise ValueError(f"Tool already registered: {tool.name}")

        self.tools[tool.name] = tool

        if category not in self.tool_categories:
            self.tool_categories[category] = []
        self.tool_categories[category].append(tool.name)

    def resolve(self, name: str) -> Optional[BaseTool]:
        """Look up a tool by name"""

        return self.tools.get(name)

    def get_available_tools(self) -> List[BaseTool]:
        """Get all available tools"""

        return list(self.tools.values())

    def get_tool_info(self, name: str) -> Optional[Dict[str, Any]]:
        """Get information about a specific tool"""

        tool = self.tools.get(name)
        if tool is None:
            return None

        category = next(
            (cat for cat, names in self.tool_categories.items() if name in names),
            None
        )
        return {
            "name": tool.name,
            "description": tool.description,
            "category": category,
            "parameters": tool.get_input_schema().model_json_schema().get("properties", {}),
        }

    def describe_tools(self) -> List[Dict[str, Any]]:
        return [self.get_tool_info(name) for name in self.tools]
