"""
Aurelia Language Server

A Language Server Protocol implementation for Aurelia HTML templates,
providing TypeScript-backed completion, hover, navigation, rename and
diagnostics inside template expressions.
"""

__version__ = "0.1.0"

# Import on demand to avoid import errors
def get_server():
    from aurelia_lsp.server import AureliaLanguageServer
    return AureliaLanguageServer

__all__ = ["get_server", "__version__"]
