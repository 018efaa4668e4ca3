"""Reconcilers, one per kind of resource managed by the operator."""

__all__ = (
    "CustomResourceReconciler",
    "PasswordReconciler",
    "PlaceholderSecretReconciler",
    "SecretExportReconciler",
    "SecretRequesterReconciler",
    "SecretTemplateReconciler",
)

from secretgenoperator.reconcilers.base import CustomResourceReconciler
from secretgenoperator.reconcilers.exports import SecretExportReconciler
from secretgenoperator.reconcilers.passwords import PasswordReconciler
from secretgenoperator.reconcilers.placeholders import (
    PlaceholderSecretReconciler,
)
from secretgenoperator.reconcilers.requests import SecretRequesterReconciler
from secretgenoperator.reconcilers.templates import SecretTemplateReconciler
