from __future__ import annotations

from pathlib import Path

from aaschat.services.errors import TemplateError

FRONT_MATTER_MARKER = "---"
ROLE_PREFIX = "system:"
SCHEMA_PLACEHOLDER = "{{schemaContext}}"


def load_template(path: str | Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise TemplateError(f"Cannot load prompt template '{path}': {exc}") from exc


def strip_front_matter(template: str) -> str:
    if not template.startswith(FRONT_MATTER_MARKER):
        return template
    end = template.find(FRONT_MATTER_MARKER, len(FRONT_MATTER_MARKER))
    if end == -1:
        return template
    return template[end + len(FRONT_MATTER_MARKER):].strip()


def strip_role_prefix(text: str) -> str:
    if text[: len(ROLE_PREFIX)].lower() == ROLE_PREFIX:
        return text[len(ROLE_PREFIX):].strip()
    return text


def compose_system_prompt(template: str, schema: str) -> str:
    """Render a prompty-style template into the system message."""
    body = strip_role_prefix(strip_front_matter(template))
    return body.replace(SCHEMA_PLACEHOLDER, schema)
