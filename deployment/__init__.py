"""
Deployment Package
Manifest parsing, deployment records and the idempotent runner
"""

from .manifest import Manifest, load_manifest, resolve_order
from .records import DeploymentRecord, DeploymentStore
from .runner import DeploymentRunner

__all__ = [
    'Manifest',
    'load_manifest',
    'resolve_order',
    'DeploymentRecord',
    'DeploymentStore',
    'DeploymentRunner',
]
