"""URL template rendering for collectors.

Templates use the placeholder syntax collectors are configured with:

    rest/api/1.0/projects/{{ .Params.FullName }}/commits?until={{ .Input.Branch }}

``.Params`` resolves against the run's CollectionParams and ``.Input``
against the current seed. Field names are PascalCase and map onto the
snake_case attributes of those objects (``FullName`` -> ``full_name``).
"""

from __future__ import annotations

import re
from typing import Any, Optional
from urllib.parse import quote

from collectors.lib.errors import ConfigurationError
from collectors.lib.models import CollectionParams, SeedInput

__all__ = ["render_url_template", "template_fields"]

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*\.(Params|Input)\.([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_ANY_ACTION = re.compile(r"\{\{.*?\}\}")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def template_fields(template: str) -> list[tuple[str, str]]:
    """Return the (scope, field) pairs referenced by a template."""
    return PLACEHOLDER_PATTERN.findall(template)


def render_url_template(
    template: str,
    params: CollectionParams,
    seed: Optional[SeedInput] = None,
) -> str:
    """Render a URL template against params and the current seed.

    Values are percent-encoded with ``/`` kept, so a full name like
    ``PROJ/repos/app`` still expands into path segments.

    Raises:
        ConfigurationError: On unsupported template actions, unknown fields,
            or an ``.Input`` reference when there is no seed.
    """
    leftover = _ANY_ACTION.findall(PLACEHOLDER_PATTERN.sub("", template))
    if leftover:
        raise ConfigurationError(
            "Unsupported URL template action",
            field="url_template",
            value=leftover[0],
        )

    def replacer(match: re.Match[str]) -> str:
        scope, name = match.group(1), match.group(2)
        target: Any = params if scope == "Params" else seed
        if target is None:
            raise ConfigurationError(
                f"URL template references .Input.{name} but the collector has no input",
                field="url_template",
                value=template,
            )
        attr = _snake_case(name)
        if not hasattr(target, attr):
            raise ConfigurationError(
                f"Unknown field .{scope}.{name} in URL template",
                field="url_template",
                value=template,
            )
        return quote(str(getattr(target, attr)), safe="/")

    return PLACEHOLDER_PATTERN.sub(replacer, template)
