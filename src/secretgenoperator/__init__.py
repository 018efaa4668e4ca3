"""A Kubernetes operator that shares Secrets across namespaces and
generates Secrets from templates and passwords.
"""

from secretgenoperator.version import __version__

__all__ = ("__version__",)
