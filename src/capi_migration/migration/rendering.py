"""Rendering of resource templates.

Templates live in ``capi_migration/migration/templates`` and are Jinja2
documents producing YAML. Undefined parameters are errors, and string values
are emitted through ``|tojson`` so the output stays valid YAML whatever the
input contains.
"""

from typing import Any

import yaml
from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from capi_migration.client.exceptions import TemplateRenderError
from capi_migration.client.objects import Resource


class TemplateRenderer:
    """Loads and renders resource templates."""

    def __init__(self, env: Environment | None = None):
        self.env = env or Environment(
            loader=PackageLoader("capi_migration.migration", "templates"),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def render_text(self, template_name: str, **params: Any) -> str:
        """Render a template to text.

        Raises:
            TemplateRenderError: If the template is missing or a parameter is undefined
        """
        try:
            return self.env.get_template(template_name).render(**params)
        except TemplateError as e:
            raise TemplateRenderError(f"cannot render {template_name}: {e}") from e

    def render(self, template_name: str, **params: Any) -> Resource:
        """Render a template and decode it into a resource body.

        Raises:
            TemplateRenderError: If rendering fails or the output is not a YAML mapping
        """
        text = self.render_text(template_name, **params)
        try:
            body = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise TemplateRenderError(f"{template_name} rendered invalid YAML: {e}") from e
        if not isinstance(body, dict):
            raise TemplateRenderError(f"{template_name} did not render a mapping")
        return body
