"""
Ghost Bridge Package

Core imports are lazily loaded so that importing the package does not pull
in the logging and crypto stacks. For direct module access, import from
submodules:

    from ghostbridge.engine import GhostBridgeProgram, Ledger
    from ghostbridge.crypto.sealing import seal_order
    from ghostbridge.exceptions import OrderHashMismatchError
"""

from .constants import ENGINE_VERSION

__version__ = ENGINE_VERSION


# Lazy imports to avoid loading everything at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'Runtime':
        from .engine.runtime import Runtime
        return Runtime
    elif name == 'TriggerKeeper':
        from .keeper import TriggerKeeper
        return TriggerKeeper
    elif name == 'load_config':
        from .config import load_config
        return load_config
    elif name == 'GhostBridgeError':
        from .exceptions import GhostBridgeError
        return GhostBridgeError
    raise AttributeError(f"module 'ghostbridge' has no attribute {name!r}")

__all__ = ['Runtime', 'TriggerKeeper', 'load_config', 'GhostBridgeError']
