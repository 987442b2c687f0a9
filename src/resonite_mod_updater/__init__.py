"""
Resonite Mod Updater - keep installed ResoniteModLoader mods current.

Reads the upstream link each mod declares in its own metadata, finds the
latest published release on GitHub, and replaces the local file only when
the published bytes differ.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
