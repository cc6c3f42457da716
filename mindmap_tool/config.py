"""Configuration constants for the mindmap tool.

Every value can be overridden through the environment.
"""

import os

# Backend server address, shared by the server, the CLI and the MCP tools.
API_HOST: str = os.environ.get("MINDMAP_TOOL_HOST", "127.0.0.1")
API_PORT: int = int(os.environ.get("MINDMAP_TOOL_PORT", "8765"))
API_BASE: str = os.environ.get("MINDMAP_TOOL_API_BASE", f"http://{API_HOST}:{API_PORT}/api")

# Number of undo steps kept by the command runtime. Must be >= 1.
MAX_HISTORY_SIZE: int = int(os.environ.get("MINDMAP_TOOL_MAX_HISTORY", "50"))

# Document created when the server starts.
INITIAL_ROOT_ID: str = os.environ.get("MINDMAP_TOOL_ROOT_ID", "root")
INITIAL_ROOT_TEXT: str = os.environ.get("MINDMAP_TOOL_ROOT_TEXT", "Mind Map")

# Frontend dev servers allowed through CORS.
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.environ.get(
        "MINDMAP_TOOL_CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000,http://127.0.0.1:5173",
    ).split(",")
    if origin.strip()
]
