"""
Resonite Mod Updater Metadata Module.

Reads the upstream link embedded in a mod assembly without loading it.
"""

__all__ = ["LinkExtractor", "MetadataScanner"]

from resonite_mod_updater.metadata.scanner import LinkExtractor, MetadataScanner
