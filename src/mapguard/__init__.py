"""mapguard package root."""

from mapguard.exceptions import NeverRaise, NeverThrown
from mapguard.invariants import never

__all__ = ["__version__", "NeverRaise", "NeverThrown", "never"]

__version__ = "0.1.0"
