"""Template rendering for scheduled messages.

Templates live in message_templates.content and use `{{ key }}`
placeholders filled from the record's payload snapshot. Rendered text is
built in memory at send time and never logged.
"""

from __future__ import annotations

import re
from typing import Any

from guestcomms.domain.errors import RuleValidationError
from guestcomms.infra.db import txn
from guestcomms.infra.repositories import templates_repository

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_.]*)\s*\}\}")


def render_text(text: str, payload: dict[str, Any]) -> str:
    """Substitute `{{ key }}` placeholders with payload values.

    Unknown keys and None values render as an empty string.
    """

    def _sub(match: re.Match[str]) -> str:
        value = payload.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_sub, text)


class DbTemplateRenderer:
    """TemplateRenderer reading template bodies from Postgres."""

    def render(self, template_id: str, payload: dict[str, Any]) -> str:
        with txn() as cur:
            content = templates_repository.get_template_content(cur, template_id)
        if content is None:
            raise RuleValidationError(f"Template {template_id} not found or disabled")
        return render_text(content, payload)
