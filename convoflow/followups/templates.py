"""``{{variable}}`` template rendering for follow-up messages."""

from __future__ import annotations

import re
from typing import Mapping

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def interpolate(template: str, variables: Mapping[str, str | None]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left verbatim."""

    def _replace(match: "re.Match[str]") -> str:
        value = variables.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, template)


__all__ = ["interpolate"]
