"""ScriptVoid: periodic batch recomputation over the script marketplace collections."""

__version__ = "0.1.0"
__author__ = "ScriptVoid Team"

__all__ = ["__version__", "__author__"]
