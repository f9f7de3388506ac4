"""
Snapwarden - block-storage snapshot lifecycle engine

This package creates and expires tagged snapshots of cloud disks:
- Target resolution of instances and standalone volumes
- Incremental snapshots with automatic fallback to full
- Metadata tags that make every snapshot self-describing
- Retention-based cleanup driven purely by those tags
- Azure, AWS and in-memory provider backends
"""

__version__ = "0.1.0"
__all__ = [
    "cli",
    "config",
    "creator",
    "engine",
    "events",
    "exceptions",
    "logging",
    "metadata",
    "models",
    "providers",
    "resolver",
    "retention",
    "serverlist",
]
