"""Exceptions raised by the secretgen operator.

Reconcilers distinguish three kinds of failure:

- `TerminalReconcileError` signals a problem that cannot be corrected by
  retrying (an invalid spec, an export that was not offered). The failure
  is recorded on the resource status and the reconcile is not requeued.
- `InternalInconsistencyError` signals corrupted internal state, such as
  two exports matching a single namespace/name. It is never retried or
  silently recovered.
- Any other exception (typically a
  `kubernetes.client.exceptions.ApiException`) is transient and the
  reconcile is requeued.
"""

__all__ = (
    "InternalInconsistencyError",
    "JSONPathError",
    "SecretgenError",
    "ServiceAccountError",
    "TemplateError",
    "TerminalReconcileError",
)


class SecretgenError(Exception):
    """Base exception for all secretgen operator errors."""


class TerminalReconcileError(SecretgenError):
    """Raised when a reconcile fails in a way that retrying cannot fix.

    The resource is not requeued; a later change to the resource (or to
    a watched dependency) triggers the next reconcile.
    """


class InternalInconsistencyError(SecretgenError):
    """Raised when an internal invariant is broken.

    This is a deliberate fail-fast path and is never converted into a
    retry.
    """


class JSONPathError(SecretgenError):
    """Raised when a JSONPath expression cannot be parsed or evaluated."""


class TemplateError(SecretgenError):
    """Raised when a SecretTemplate cannot be materialized.

    Parameters
    ----------
    section : `str`
        The template section that failed (``data`` or ``stringData``).
    key : `str`
        The key within the section whose expression failed.
    message : `str`
        The underlying error message.
    """

    def __init__(self, section: str, key: str, message: str) -> None:
        self.section = section
        self.key = key
        self.message = message
        super().__init__(f"Templating {section} key '{key}': {message}")


class ServiceAccountError(SecretgenError):
    """Raised when a client for a service account cannot be constructed."""
