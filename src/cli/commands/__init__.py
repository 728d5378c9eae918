"""CLI command modules."""

from .daemon import daemon
from .history import history
from .lookup import lookup
from .permission import permission
from .settings import settings
from .status import status

__all__ = [
    "daemon",
    "history",
    "status",
    "settings",
    "permission",
    "lookup",
]
