"""
Notification message templates.

Templates are plain strings with {parameter} placeholders, rendered with
Python's string formatting. Each template declares the parameters it takes,
and rendering is strict both ways: a referenced parameter that the caller
leaves out is an error, and so is a supplied parameter the template does not
declare. That catches typos in parameter names instead of sending a message
with a blank in it.

Design decisions:
- Templates are configuration: built-in defaults below, optionally replaced
  from a JSON file at startup, never edited at runtime
- Placeholders are checked against parameter_names when a template is
  constructed, so a broken template fails at load time rather than on the
  first ban
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from string import Formatter
from typing import Any, Mapping

from shared.errors import (
    MissingParameterError,
    TemplateError,
    TemplateNotFoundError,
    UnknownParameterError,
)

# Template names used by the ban lifecycle
BAN_NOTICE = "ban-notice"
UNBAN_NOTICE = "unban-notice"
BAN_EXPIRED = "ban-expired"

_FORMATTER = Formatter()
_FIELD_BASE = re.compile(r"^[^.\[]+")


def referenced_parameters(content: str) -> list[str]:
    """
    Names referenced by {placeholders} in `content`, in order of first use.

    Raises:
        TemplateError: If the content is not a valid format string or uses
            positional placeholders
    """
    names: list[str] = []
    try:
        parsed = list(_FORMATTER.parse(content))
    except ValueError as e:
        raise TemplateError(f"Malformed template content: {e}") from e

    for _, field_name, _, _ in parsed:
        if field_name is None:
            continue
        match = _FIELD_BASE.match(field_name)
        if not match or match.group(0).isdigit():
            raise TemplateError(f"Templates only support named placeholders, got {{{field_name}}}")
        name = match.group(0)
        if name not in names:
            names.append(name)
    return names


@dataclass(frozen=True)
class NotificationTemplate:
    """
    A named message template.

    Attributes:
        name: Lookup key, e.g. "ban-notice"
        content: Message text with {parameter} placeholders
        parameter_names: Every parameter the template accepts, in order
    """
    name: str
    content: str
    parameter_names: tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "parameter_names", tuple(self.parameter_names))
        undeclared = [
            p for p in referenced_parameters(self.content) if p not in self.parameter_names
        ]
        if undeclared:
            raise TemplateError(
                f"Template '{self.name}' references undeclared parameters: {', '.join(undeclared)}"
            )

    def render(self, parameters: Mapping[str, Any]) -> str:
        """
        Substitute `parameters` into the template.

        Raises:
            MissingParameterError: A referenced parameter was not supplied
            UnknownParameterError: A supplied parameter is not declared
        """
        missing = [p for p in referenced_parameters(self.content) if p not in parameters]
        if missing:
            raise MissingParameterError(self.name, missing)

        unknown = sorted(p for p in parameters if p not in self.parameter_names)
        if unknown:
            raise UnknownParameterError(self.name, unknown)

        return self.content.format(**parameters)


# =============================================================================
# Template Definitions
# =============================================================================

DEFAULT_TEMPLATES: dict[str, NotificationTemplate] = {
    BAN_NOTICE: NotificationTemplate(
        name=BAN_NOTICE,
        content=(
            "Hi {customer_name}, your reservation access has been suspended {ban_term}. "
            "Reason: {reason}. Please contact the outlet if you believe this is a mistake."
        ),
        parameter_names=("customer_name", "reason", "ban_term"),
    ),
    UNBAN_NOTICE: NotificationTemplate(
        name=UNBAN_NOTICE,
        content=(
            "Hi {customer_name}, the suspension on your account has been lifted. "
            "You are welcome to make reservations again."
        ),
        parameter_names=("customer_name",),
    ),
    BAN_EXPIRED: NotificationTemplate(
        name=BAN_EXPIRED,
        content=(
            "Hi {customer_name}, your suspension ended on {ended_on}. "
            "You are welcome to make reservations again."
        ),
        parameter_names=("customer_name", "ended_on"),
    ),
}


# =============================================================================
# Template Loading
# =============================================================================

def load_templates(path: Path) -> dict[str, NotificationTemplate]:
    """
    Load templates from a JSON file on top of the defaults.

    The file holds a list of {"name", "content", "parameter_names"} objects.
    Entries replace the default with the same name.

    Raises:
        TemplateError: If an entry is malformed
    """
    with open(path, "r") as f:
        entries = json.load(f)

    templates = dict(DEFAULT_TEMPLATES)
    for entry in entries:
        try:
            template = NotificationTemplate(
                name=entry["name"],
                content=entry["content"],
                parameter_names=tuple(entry.get("parameter_names", ())),
            )
        except KeyError as e:
            raise TemplateError(f"Template entry in {path} is missing {e}") from e
        templates[template.name] = template
    return templates


def get_template(
    templates: Mapping[str, NotificationTemplate],
    name: str,
) -> NotificationTemplate:
    """
    Raises:
        TemplateNotFoundError: If no template has this name
    """
    template = templates.get(name)
    if template is None:
        raise TemplateNotFoundError(f"No template found named: {name}")
    return template
