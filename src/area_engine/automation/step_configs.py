"""Typed, per-service views of a step's free-form ``config`` map."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MESSAGE_TEMPLATE_KEYS = ("message", "messageTemplate", "message_template", "body", "content")
GMAIL_LABEL_KEYS = ("label", "labelName")

DEFAULT_TIMER_INTERVAL_MINUTES = 60
DEFAULT_DAYS_UNTIL_INTERVAL_MINUTES = 1440


def first_present(config: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    """Return the value of the first key that is present and not blank."""
    for key in keys:
        value = config.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _optional_str(config: Mapping[str, Any], key: str) -> str | None:
    value = config.get(key)
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _optional_int(config: Mapping[str, Any], key: str) -> int | None:
    value = config.get(key)
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def split_repository(config: Mapping[str, Any]) -> tuple[str | None, str | None]:
    """Resolve ``(owner, name)`` from ``repository`` or the split owner/name keys."""
    repository = _optional_str(config, "repository")
    if repository and "/" in repository:
        owner, _, name = repository.strip().partition("/")
        if owner and name:
            return owner, name
    return _optional_str(config, "repositoryOwner"), _optional_str(config, "repositoryName")


class _FrozenConfig(BaseModel):
    model_config = ConfigDict(frozen=True)


class GmailTriggerConfig(_FrozenConfig):
    label: str | None = None
    subject_contains: str | None = None
    from_address: str | None = None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> GmailTriggerConfig:
        label = first_present(config, GMAIL_LABEL_KEYS)
        return cls(
            label=str(label) if label is not None else None,
            subject_contains=_optional_str(config, "subjectContains"),
            from_address=_optional_str(config, "fromAddress"),
        )

    def search_query(self) -> str:
        """Build a Gmail search query such as ``label:X subject:"Y" from:Z``."""
        parts: list[str] = []
        if self.label:
            parts.append(f"label:{self.label}")
        if self.subject_contains:
            parts.append(f'subject:"{self.subject_contains}"')
        if self.from_address:
            parts.append(f"from:{self.from_address}")
        return " ".join(parts)


class GitHubTriggerConfig(_FrozenConfig):
    owner: str | None = None
    repo: str | None = None
    labels: list[str] = Field(default_factory=list)

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> GitHubTriggerConfig:
        owner, repo = split_repository(config)
        return cls(owner=owner, repo=repo, labels=parse_labels(config.get("labels")))

    @property
    def full_name(self) -> str | None:
        if self.owner and self.repo:
            return f"{self.owner}/{self.repo}"
        return None


class TimerConfig(_FrozenConfig):
    timer_type: str = "recurring"
    interval_minutes: int | None = None
    days_count: int | None = None
    target_day: str | None = None

    @classmethod
    def from_mapping(cls, timer_type: str | None, config: Mapping[str, Any]) -> TimerConfig:
        return cls(
            timer_type=(timer_type or _optional_str(config, "timerType") or "recurring").lower(),
            interval_minutes=_optional_int(config, "intervalMinutes"),
            days_count=_optional_int(config, "daysCount"),
            target_day=_optional_str(config, "targetDay"),
        )

    @property
    def effective_interval_minutes(self) -> int:
        if self.interval_minutes is not None:
            return self.interval_minutes
        if self.timer_type == "days_until":
            return DEFAULT_DAYS_UNTIL_INTERVAL_MINUTES
        return DEFAULT_TIMER_INTERVAL_MINUTES


class DiscordReactionConfig(_FrozenConfig):
    webhook_url: str | None = None
    channel_id: str | None = None
    message_template: str | None = None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> DiscordReactionConfig:
        template = first_present(config, MESSAGE_TEMPLATE_KEYS)
        return cls(
            webhook_url=_optional_str(config, "webhookUrl"),
            channel_id=_optional_str(config, "channelId"),
            message_template=str(template) if template is not None else None,
        )


class GitHubReactionConfig(_FrozenConfig):
    owner: str | None = None
    repo: str | None = None
    issue_title: str | None = None
    issue_body: str | None = None
    labels: list[str] = Field(default_factory=list)
    pr_title: str | None = None
    pr_body: str | None = None
    source_branch: str | None = None
    target_branch: str = "main"
    commit_message: str | None = None
    file_path: str | None = None
    file_content: str | None = None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> GitHubReactionConfig:
        owner, repo = split_repository(config)
        return cls(
            owner=owner,
            repo=repo,
            issue_title=_optional_str(config, "issueTitle") or _optional_str(config, "title"),
            issue_body=_optional_str(config, "issueBody") or _optional_str(config, "body"),
            labels=parse_labels(config.get("labels")),
            pr_title=_optional_str(config, "prTitle"),
            pr_body=_optional_str(config, "prBody"),
            source_branch=_optional_str(config, "sourceBranch"),
            target_branch=_optional_str(config, "targetBranch") or "main",
            commit_message=_optional_str(config, "commitMessage"),
            file_path=_optional_str(config, "filePath"),
            file_content=_optional_str(config, "fileContent"),
        )


def parse_labels(value: Any) -> list[str]:
    """Accept a comma-separated string or a list of labels."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        return []
    return [item.strip() for item in items if item and item.strip()]
