"""
.. include:: ../README.md
"""

__all__ = [
    "helm_deployer",
    "history",
    "post_render",
    "manifest",
    "render",
    "kustomize",
    "storage",
    "cluster",
    "helm",
    "config",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
