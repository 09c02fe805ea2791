"""Import specifier resolution and the manifests that configure it."""

from __future__ import annotations

from code_reach.resolution.manifests import ManifestInfo, load_manifests
from code_reach.resolution.resolver import Resolver, detect_jvm_roots, glob_to_regex

__all__ = [
    "ManifestInfo",
    "Resolver",
    "detect_jvm_roots",
    "glob_to_regex",
    "load_manifests",
]
