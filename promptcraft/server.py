from mcp.server.fastmcp import FastMCP

from .config import PromptCraftConfig, build_services
from .tools.prompts import register_tools

mcp = FastMCP("promptcraft")


def main():
    services = build_services(PromptCraftConfig.from_env())
    register_tools(mcp, services.use_cases)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
