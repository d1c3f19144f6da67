"""Pydantic schemas for inbound push notifications.

Only the fields the controller acts on are declared; everything else in the
payload is kept as extra data and ignored.

GitHub webhook documentation: https://docs.github.com/en/webhooks/webhook-events-and-payloads#push
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

BRANCH_REF_PREFIX = "refs/heads/"
DEFAULT_BRANCH = "main"


class PushOwner(BaseModel):
    """Repository owner (user or organization)."""

    model_config = ConfigDict(extra="allow")

    login: str = Field(..., min_length=1, description="Account username/org name")


class PushRepository(BaseModel):
    """Repository the push went to."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, description="Repository name")
    owner: PushOwner = Field(..., description="Repository owner")
    clone_url: str | None = Field(None, description="HTTPS clone URL")


class HeadCommit(BaseModel):
    """Newest commit of the push."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1, description="Commit SHA")
    message: str = Field("", description="Commit message")


class PushEvent(BaseModel):
    """A push that should produce a deployment."""

    model_config = ConfigDict(extra="allow")

    kind: Literal["push"] = "push"
    ref: str = Field("", description="Full git ref, e.g. refs/heads/main")
    repository: PushRepository
    head_commit: HeadCommit

    @property
    def branch(self) -> str:
        branch = self.ref.removeprefix(BRANCH_REF_PREFIX)
        return branch or DEFAULT_BRANCH

    @property
    def repo_owner(self) -> str:
        return self.repository.owner.login

    @property
    def repo_name(self) -> str:
        return self.repository.name

    @property
    def commit_sha(self) -> str:
        return self.head_commit.id


class IgnoredEvent(BaseModel):
    """Any event type the controller does not act on."""

    kind: Literal["ignored"] = "ignored"
    event_type: str


def parse_event(event_type: str, payload: dict[str, Any]) -> PushEvent | IgnoredEvent:
    """Parse a raw notification into its typed variant.

    Raises:
        pydantic.ValidationError: a push payload lacks a required field.
    """
    if event_type != "push":
        return IgnoredEvent(event_type=event_type)
    return PushEvent.model_validate(payload)
