"""Schema designer editing engine and MCP server package."""

from .config import Config, DesignerOptions, load_config
from .controller import DesignerController
from .errors import SchemaDesignerError, ValidationError
from .logging import configure_logging
from .models import Node
from .mutations import MutationEngine, MutationResult, insert, move, move_sibling, remove, update
from .server import SERVER, main

__all__ = [
    "Config",
    "DesignerOptions",
    "load_config",
    "DesignerController",
    "SchemaDesignerError",
    "ValidationError",
    "configure_logging",
    "Node",
    "MutationEngine",
    "MutationResult",
    "insert",
    "update",
    "remove",
    "move",
    "move_sibling",
    "SERVER",
    "main",
]
