"""
Mindmap Tool - hierarchical diagram editor backend.

Packages:
- core: document model, tree operations, layout engine, connector geometry
- backend: command runtime, action handlers, HTTP/WebSocket API
"""

__version__ = "1.0.0"
