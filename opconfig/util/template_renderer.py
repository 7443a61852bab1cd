"""
Renders configuration templates with secret lookups.
"""

from typing import Mapping

import jinja2
from jinja2 import Environment

from opconfig.errors import SecretFetchError, TemplateError
from opconfig.vault.secret_resolver import SecretResolver

LOOKUP_NAME = "op"


class TemplateRenderer:
    """
    Render a configuration template against variable bindings.

    Variables use ordinary {{ NAME }} substitution. Secrets are looked up
    with op, either called directly or used as a filter:

        password = "{{ op('op://vault/item/password') }}"
        api_key = "{{ API_KEY_REF | op }}"
    """

    def __init__(self, resolver: SecretResolver):
        self._resolver = resolver
        self._environment = Environment(
            enable_async=True,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self._environment.globals[LOOKUP_NAME] = self._lookup
        self._environment.filters[LOOKUP_NAME] = self._lookup

    async def _lookup(self, path) -> str:
        if not isinstance(path, str) or not path:
            raise SecretFetchError(f"Secret lookup needs a non-empty path, got {path!r}")
        return await self._resolver.resolve(path)

    async def render(self, raw_document: str, bindings: Mapping[str, str]) -> str:
        """
        Render the raw document.

        Raises:
            TemplateError: On template syntax or evaluation errors
            SecretFetchError: If a referenced secret cannot be resolved
        """
        # A binding must not shadow the lookup function
        context = {k: v for k, v in bindings.items() if k != LOOKUP_NAME}

        try:
            template = self._environment.from_string(raw_document)
            return await template.render_async(context)
        except jinja2.TemplateSyntaxError as e:
            raise TemplateError(f"Template syntax error on line {e.lineno}: {e.message}") from e
        except jinja2.TemplateError as e:
            raise TemplateError(f"Unable to render configuration template: {e}") from e
        except TypeError as e:
            # Wrong arguments to op() or another template callable
            raise TemplateError(f"Invalid call in configuration template: {e}") from e
