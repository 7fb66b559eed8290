"""Compose manifest assembly."""
from sitebox.manifest.descriptors import build_services, build_volumes
from sitebox.manifest.renderer import ManifestRenderer, manifest_context

__all__ = ['ManifestRenderer', 'build_services', 'build_volumes', 'manifest_context']
