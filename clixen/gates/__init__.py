"""Gates: permission and quota enforcement ahead of workflow dispatch."""

from clixen.gates.quota import PermissionGuard

__all__ = ["PermissionGuard"]
