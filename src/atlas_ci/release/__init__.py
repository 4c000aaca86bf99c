"""
Release pós-build.

- descriptor → `ReleaseDescriptor` canônico (cluster, namespaces, meta, instâncias)
- hook       → `ReleasingPostBuildHook` + contrato `ReleaseNotifier`
"""

from .descriptor import ReleaseDescriptor, ReleaseInstance, ReleaseMeta
from .hook import ReleaseNotifier, ReleasingPostBuildHook

__all__ = [
    "ReleaseDescriptor",
    "ReleaseInstance",
    "ReleaseMeta",
    "ReleaseNotifier",
    "ReleasingPostBuildHook",
]
