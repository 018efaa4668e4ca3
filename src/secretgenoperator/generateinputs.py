"""Fingerprint of the inputs a Secret was generated from."""

from __future__ import annotations

__all__ = ("GENERATE_INPUTS_ANNOTATION", "GenerateInputs")

import json
from typing import Any

GENERATE_INPUTS_ANNOTATION = "secretgen.k14s.io/generate-inputs"
"""Annotation recording the generation inputs on the generated Secret."""


class GenerateInputs:
    """Records generation inputs (typically a resource's ``spec``) on a
    Secret so that a change of inputs can be detected later.

    Parameters
    ----------
    inputs : `Any`
        JSON-serializable inputs.
    """

    def __init__(self, inputs: Any) -> None:
        self.inputs = inputs

    def serialize(self) -> str:
        return json.dumps(self.inputs, sort_keys=True, separators=(",", ":"))

    def add(self, annotations: dict[str, str]) -> None:
        """Store the fingerprint in ``annotations``."""
        annotations[GENERATE_INPUTS_ANNOTATION] = self.serialize()

    def is_changed(self, annotations: dict[str, str] | None) -> bool:
        """Test whether ``annotations`` hold a different (or no)
        fingerprint.
        """
        existing = (annotations or {}).get(GENERATE_INPUTS_ANNOTATION)
        if existing is None:
            return True
        return existing != self.serialize()
