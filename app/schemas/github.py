"""Pydantic schemas for repository references, time windows and statistics."""

import re
from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.datetime_utils import to_naive_utc, utc_now
from app.core.errors import InvalidRequestError

PRESET_DAYS: dict[str, int] = {"1day": 1, "1week": 7, "1month": 30}
PRESET_LABELS: dict[str, str] = {
    "1day": "Last 24 hours",
    "1week": "Last 7 days",
    "1month": "Last 30 days",
}

_REPO_SLUG = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_REPO_URL = re.compile(r"^https?://(?:www\.)?github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(?:\.git)?/?$")


class RepoRef(BaseModel):
    """A GitHub repository reference."""

    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"

    @classmethod
    def parse(cls, value: str) -> "RepoRef":
        """Parse "owner/repo" or a github.com URL."""
        value = (value or "").strip()
        match = _REPO_URL.match(value)
        if match:
            return cls(owner=match.group(1), repo=match.group(2))
        if _REPO_SLUG.match(value):
            owner, repo = value.split("/", 1)
            return cls(owner=owner, repo=repo)
        raise InvalidRequestError(f"Invalid repository reference: {value!r}")


RELEASE_CONFLICT = "Choose either a date range or specific releases, not both"
FILTER_FIELDS = ("include_labels", "exclude_labels", "include_tags", "exclude_tags")


def clean_tokens(values: list[str]) -> list[str]:
    """Strip, drop blanks and de-duplicate, keeping first-seen order."""
    return list(dict.fromkeys(v.strip() for v in values if v and v.strip()))


def _check_overlap(kind: str, include: list[str], exclude: list[str]) -> None:
    conflict = next((token for token in include if token in exclude), None)
    if conflict is not None:
        raise ValueError(f'{kind} "{conflict}" cannot be both included and excluded')


class ReleaseRef(BaseModel):
    """A release whose commits make up (part of) a release window."""

    tag: str
    name: str | None = None
    previous_tag: str | None = None
    published_at: datetime | None = None
    target_commitish: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.tag


class TimeWindow(BaseModel):
    """
    Commit selection for a record.

    ``preset`` and ``custom`` windows cover a date range on the requested
    branch. ``release`` windows cover the commits of each selected release:
    between ``previous_tag`` and ``tag`` when the previous tag is known,
    otherwise the lookback before ``published_at`` on the release's target
    branch, otherwise the history reachable from ``tag``. Label and tag
    filters narrow any mode.
    """

    mode: Literal["preset", "custom", "release"] = "preset"
    preset: Literal["1day", "1week", "1month"] | None = "1week"
    since: datetime | None = None
    until: datetime | None = None
    releases: list[ReleaseRef] = Field(default_factory=list)
    include_labels: list[str] = Field(default_factory=list)
    exclude_labels: list[str] = Field(default_factory=list)
    include_tags: list[str] = Field(default_factory=list)
    exclude_tags: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _check_release_conflicts(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if data.get("mode") == "release":
            if data.get("preset") or data.get("since") or data.get("until"):
                raise ValueError(RELEASE_CONFLICT)
        elif data.get("releases"):
            raise ValueError(RELEASE_CONFLICT)
        return data

    @field_validator(*FILTER_FIELDS)
    @classmethod
    def _clean_filters(cls, values: list[str]) -> list[str]:
        return clean_tokens(values)

    @field_validator("releases")
    @classmethod
    def _unique_releases(cls, releases: list[ReleaseRef]) -> list[ReleaseRef]:
        unique: dict[str, ReleaseRef] = {}
        for release in releases:
            tag = release.tag.strip()
            if tag and tag not in unique:
                unique[tag] = release.model_copy(update={"tag": tag})
        return list(unique.values())

    @model_validator(mode="after")
    def _check_range(self) -> "TimeWindow":
        _check_overlap("Label", self.include_labels, self.exclude_labels)
        _check_overlap("Tag", self.include_tags, self.exclude_tags)
        if self.mode == "preset" and self.preset is None:
            raise ValueError("preset window requires a preset")
        if self.mode == "custom":
            if self.since is None:
                raise ValueError("custom window requires 'since'")
            if self.until is not None and to_naive_utc(self.until) <= to_naive_utc(self.since):
                raise ValueError("'until' must be after 'since'")
        if self.mode == "release":
            if not self.releases:
                raise ValueError("release window requires at least one release")
            self.preset = None
        return self

    @property
    def has_filters(self) -> bool:
        return any(getattr(self, name) for name in FILTER_FIELDS)

    @classmethod
    def from_preset(cls, preset: str) -> "TimeWindow":
        if preset not in PRESET_DAYS:
            raise InvalidRequestError(f"Unknown time window preset: {preset!r}")
        return cls(mode="preset", preset=preset)  # type: ignore[arg-type]

    def resolve(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """
        Return the (since, until) range as naive UTC datetimes.

        Raises:
            InvalidRequestError: Release windows are bounded by tags, not dates
        """
        now = now or utc_now()
        if self.mode == "release":
            raise InvalidRequestError("Release windows have no single date range")
        if self.mode == "preset":
            assert self.preset is not None
            return now - timedelta(days=PRESET_DAYS[self.preset]), now
        assert self.since is not None
        until = to_naive_utc(self.until) if self.until else now
        return to_naive_utc(self.since), until

    def describe(self) -> str:
        """Human-readable description of the window and its filters."""
        if self.mode == "preset":
            assert self.preset is not None
            label = PRESET_LABELS[self.preset]
        elif self.mode == "release":
            label = "Releases " + ", ".join(r.label for r in self.releases)
        else:
            since, until = self.resolve()
            label = f"{since.date().isoformat()} to {until.date().isoformat()}"

        filters = [
            f"{prefix} {', '.join(values)}"
            for prefix, values in (
                ("labels", self.include_labels),
                ("excluding labels", self.exclude_labels),
                ("tags", self.include_tags),
                ("excluding tags", self.exclude_tags),
            )
            if values
        ]
        if filters:
            label += f" ({'; '.join(filters)})"
        return label


class CommitInfo(BaseModel):
    """A single commit with its line churn."""

    sha: str
    message: str
    author: str | None = None
    additions: int = 0
    deletions: int = 0
    diff: str = ""

    @property
    def churn(self) -> int:
        return self.additions + self.deletions

    @property
    def title(self) -> str:
        return self.message.split("\n", 1)[0].strip()


class RepoStats(BaseModel):
    """Aggregate statistics for a repository window."""

    commits: int = Field(ge=0)
    additions: int = Field(ge=0)
    deletions: int = Field(ge=0)
    contributors: list[str] = Field(default_factory=list)
    commit_messages: list[str] = Field(default_factory=list)
    commit_details: list[CommitInfo] = Field(default_factory=list)
