"""Placeholder substitution for reaction templates.

Supported forms are ``{{key}}``, ``{key}`` and the dotted aliases
``{email.subject}``, ``{issue.title}``, ``{pr.url}`` and friends. Like
``string.Template.safe_substitute``, placeholders that cannot be resolved
are left in place.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][\w.]*)\s*\}\}|\{([A-Za-z_][\w.]*)\}")

ALIASES: dict[str, str] = {
    "email.subject": "subject",
    "email.from": "from",
    "email.snippet": "snippet",
    "email.id": "messageId",
    "email.count": "messageCount",
    "issue.number": "issueNumber",
    "issue.title": "issueTitle",
    "issue.body": "issueBody",
    "issue.url": "issueUrl",
    "issue.author": "issueAuthor",
    "issue.count": "issueCount",
    "pr.number": "prNumber",
    "pr.title": "prTitle",
    "pr.body": "prBody",
    "pr.url": "prUrl",
    "pr.author": "prAuthor",
    "pr.count": "prCount",
}

_MISSING = object()


def _lookup(values: Mapping[str, Any], key: str) -> Any:
    if key in values:
        return values[key]
    alias = ALIASES.get(key)
    if alias is not None and alias in values:
        return values[alias]
    if "." in key:
        current: Any = values
        for part in key.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            else:
                return _MISSING
        return current
    return _MISSING


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_template(template: str, values: Mapping[str, Any]) -> str:
    """Substitute placeholders in ``template`` from ``values``.

    Args:
        template: Text containing placeholders
        values: Context values, usually ``TriggerContext.to_dict()``

    Returns:
        The rendered text
    """

    def replace(match: re.Match[str]) -> str:
        key = match.group(1) or match.group(2)
        value = _lookup(values, key)
        if value is _MISSING:
            return match.group(0)
        return _format(value)

    return PLACEHOLDER_PATTERN.sub(replace, template)


def render_optional(template: str | None, values: Mapping[str, Any]) -> str | None:
    if template is None:
        return None
    return render_template(template, values)
