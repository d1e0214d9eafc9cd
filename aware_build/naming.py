"""Name normalisation for artifact file names and target lookups."""

from __future__ import annotations

import re

_CAMEL_BOUNDARY_RE = re.compile(r"([a-z0-9])([A-Z])")
_ACRONYM_BOUNDARY_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")
_SEPARATOR_RE = re.compile(r"[\s_.\-]+")


def to_kebab_case(value: str) -> str:
    """Return ``value`` lower-cased with words joined by dashes.

    ``"NugetComposer"`` becomes ``"nuget-composer"``, ``"CheckTools"`` becomes
    ``"check-tools"`` and ``"my_app v2"`` becomes ``"my-app-v2"``.
    """

    text = _ACRONYM_BOUNDARY_RE.sub(r"\1-\2", value.strip())
    text = _CAMEL_BOUNDARY_RE.sub(r"\1-\2", text)
    text = _SEPARATOR_RE.sub("-", text)
    return text.strip("-").lower()
