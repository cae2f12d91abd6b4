"""
modsetup - regenerate an editable source tree from compiled game modules.

Decompiles the client and server modules into one de-duplicated tree with
build descriptors for both.
"""

__version__ = "0.1.0"

from modsetup.core.orchestrator import DecompileTask

__all__ = ["DecompileTask", "__version__"]
