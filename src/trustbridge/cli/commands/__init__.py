"""CLI command modules for Trustbridge.

Each module exposes a ``register(subparsers)`` function that wires up
its argparse sub-commands and sets ``parser.set_defaults(func=handler)``.
"""

from . import discover, network, server
from .discover import cmd_discover
from .network import cmd_network_path, cmd_network_show, cmd_network_validate
from .server import cmd_serve

# All command modules with register() functions, in registration order.
COMMAND_MODULES = [
    network,
    discover,
    server,
]

__all__ = [
    "COMMAND_MODULES",
    "cmd_discover",
    "cmd_network_path",
    "cmd_network_show",
    "cmd_network_validate",
    "cmd_serve",
]
