"""
PromptHub MCP bridge.

Speaks the Model Context Protocol over stdio and forwards tool discovery
and tool calls to the PromptHub backend over HTTP.
"""

# Interface level of the installed bridge package. A downloaded server module
# declares the level it was written against as REQUIRED_API_LEVEL; the loader
# only runs it when the two match.
API_LEVEL = 1
