"""
The storage module keeps the versioned history of every release.

- Uses the release name (the bundle id) and version as the key for records.
- Records a new version by superseding the prior deployed version and pruning
  history beyond the retention limit, atomically.
- Provides read-only access for the history reader and deployment catalog.

This abstract interface allows for various implementations (in-memory, helm
secrets in the cluster, etc.).
"""

from .store import ReleaseReader, ReleaseStorage, MAX_HISTORY
from .in_memory import InMemoryReleaseStorage
from .secrets import HelmSecretsReader

__all__ = [
    "ReleaseReader",
    "ReleaseStorage",
    "InMemoryReleaseStorage",
    "HelmSecretsReader",
    "MAX_HISTORY",
]
