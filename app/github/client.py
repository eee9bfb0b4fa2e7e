"""GitHub REST client that aggregates commit statistics for a time window or release selection."""

import asyncio
from datetime import datetime, timedelta
from typing import Any

import httpx

from app.config import get_config, get_settings
from app.core.datetime_utils import to_github_timestamp, to_naive_utc
from app.core.errors import UpstreamFetchError
from app.core.logging import get_logger
from app.core.retry import RetryConfig, http_retry_config, retry_with_backoff
from app.schemas.github import CommitInfo, ReleaseRef, RepoRef, RepoStats, TimeWindow

logger = get_logger(__name__)

USER_AGENT = "repatch/1.0 (changelog generator)"
PER_PAGE = 100
MAX_PAGES = 10
DETAIL_CONCURRENCY = 5
# Releases without a previous tag cover this many days before publication
RELEASE_LOOKBACK_DAYS = 30
# Unknown tag or ref in a release selection
SKIPPABLE_RELEASE_STATUSES = (404, 422)


def contributor_name(commit: dict[str, Any]) -> str | None:
    """Prefer the GitHub login, fall back to the git author name."""
    author = commit.get("author") or {}
    if author.get("login"):
        return f"@{author['login']}"
    git_author = (commit.get("commit") or {}).get("author") or {}
    return git_author.get("name") or None


def commit_date(commit: dict[str, Any]) -> str:
    """ISO author date, empty when GitHub omits it."""
    return ((commit.get("commit") or {}).get("author") or {}).get("date") or ""


def matches_filters(found: set[str], include: list[str], exclude: list[str]) -> bool:
    """Keep when any include token is present (if any are given) and no exclude token is."""
    if include and not found.intersection(include):
        return False
    return not found.intersection(exclude)


def build_diff_preview(files: list[dict[str, Any]], limit: int) -> str:
    """Concatenate per-file patches into a bounded diff preview."""
    parts: list[str] = []
    size = 0
    for f in files:
        patch = f.get("patch")
        if not patch:
            continue
        chunk = f"--- {f.get('filename', '')}\n{patch}\n"
        parts.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    return "".join(parts)[:limit]


class GitHubStatsFetcher:
    """
    Fetch commit, churn and contributor aggregates from the GitHub REST API.

    Lists commits in the window or selected releases (following pagination),
    narrows them by tag and pull-request label filters, then fetches per-commit
    detail for line counts and a diff preview. Detail requests are capped at
    ``max_details``; when a window has more commits, totals are extrapolated
    from the sampled commits.
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
        max_details: int | None = None,
        diff_preview_chars: int | None = None,
    ):
        settings = get_settings()
        config = get_config()
        self.token = token if token is not None else settings.github_token
        self.api_url = (api_url or settings.github_api_url).rstrip("/")
        self.retry_config = retry_config or http_retry_config(
            max_attempts=config.http.max_attempts,
            backoff_base=config.http.backoff_base,
            backoff_max=config.http.backoff_max,
        )
        self.max_details = max_details or config.pipeline.max_commit_details
        self.diff_preview_chars = diff_preview_chars or config.pipeline.diff_preview_chars
        self._client = client
        self._timeout = config.http.timeout_seconds

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get(
        self, client: httpx.AsyncClient, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        async def do_request() -> httpx.Response:
            resp = await client.get(url, params=params, headers=self._headers())
            resp.raise_for_status()
            return resp

        return await retry_with_backoff(
            do_request,
            config=self.retry_config,
            operation_name=f"github:{url}",
        )

    async def fetch(
        self, repo: RepoRef, window: TimeWindow, branch: str | None = None
    ) -> RepoStats:
        """
        Aggregate statistics for ``repo`` over ``window``.

        Raises:
            UpstreamFetchError: The commit listing failed after retries, or the
                repository does not exist or is not accessible.
        """
        if self._client is not None:
            return await self._fetch(self._client, repo, window, branch)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._fetch(client, repo, window, branch)

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        repo: RepoRef,
        window: TimeWindow,
        branch: str | None,
    ) -> RepoStats:
        log = logger.bind(repo=repo.full_name, branch=branch)

        try:
            raw_commits = await self._collect_commits(client, repo, window, branch)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            # GitHub answers 409 for repositories without any commits
            if status == 409:
                log.info("github_repository_empty")
                return RepoStats(commits=0, additions=0, deletions=0)
            message = {
                401: "GitHub rejected the configured token",
                403: "GitHub access denied or rate limit exceeded",
                404: f"Repository {repo.full_name} not found or not accessible",
            }.get(status, f"GitHub API error {status} for {repo.full_name}")
            log.bind(status=status).error("github_list_commits_failed")
            raise UpstreamFetchError(message, status_code=status) from e
        except httpx.HTTPError as e:
            log.bind(error=str(e)).error("github_list_commits_failed")
            raise UpstreamFetchError(f"GitHub request failed: {e}") from e

        if not raw_commits:
            log.info("github_no_commits_in_window")
            return RepoStats(commits=0, additions=0, deletions=0)

        contributors: list[str] = []
        seen: set[str] = set()
        for raw in raw_commits:
            name = contributor_name(raw)
            if name and name not in seen:
                seen.add(name)
                contributors.append(name)

        sampled = raw_commits[: self.max_details]
        semaphore = asyncio.Semaphore(DETAIL_CONCURRENCY)

        async def detail(raw: dict[str, Any]) -> CommitInfo:
            async with semaphore:
                return await self._commit_detail(client, repo, raw)

        details = list(await asyncio.gather(*(detail(raw) for raw in sampled)))
        additions = sum(c.additions for c in details)
        deletions = sum(c.deletions for c in details)

        if len(sampled) < len(raw_commits):
            factor = len(raw_commits) / len(sampled)
            additions = round(additions * factor)
            deletions = round(deletions * factor)
            log.bind(sampled=len(sampled), total=len(raw_commits)).info(
                "github_stats_extrapolated"
            )

        stats = RepoStats(
            commits=len(raw_commits),
            additions=additions,
            deletions=deletions,
            contributors=contributors,
            commit_messages=[(raw.get("commit") or {}).get("message", "") for raw in raw_commits],
            commit_details=details,
        )
        log.bind(
            commits=stats.commits,
            additions=stats.additions,
            deletions=stats.deletions,
            contributors=len(stats.contributors),
        ).info("github_stats_fetched")
        return stats

    async def _collect_commits(
        self,
        client: httpx.AsyncClient,
        repo: RepoRef,
        window: TimeWindow,
        branch: str | None,
    ) -> list[dict[str, Any]]:
        if window.mode == "release":
            commits = await self._release_commits(client, repo, window.releases)
        else:
            commits = await self._list_commits(client, repo, window, branch)

        if window.include_tags or window.exclude_tags:
            commits = await self._filter_by_tags(client, repo, commits, window)
        if window.include_labels or window.exclude_labels:
            commits = await self._filter_by_labels(client, repo, commits, window)
        return commits

    async def _paginate(
        self,
        client: httpx.AsyncClient,
        url: str | None,
        params: dict[str, Any] | None,
        repo: RepoRef,
        key: str | None = None,
    ) -> list[dict[str, Any]]:
        """Follow Link rel=next for up to MAX_PAGES pages."""
        items: list[dict[str, Any]] = []
        pages = 0
        while url and pages < MAX_PAGES:
            resp = await self._get(client, url, params=params)
            data = resp.json()
            items.extend((data.get(key) or []) if key else data)
            pages += 1
            # The next link already carries the query string
            url = resp.links.get("next", {}).get("url")
            params = None

        if url:
            logger.bind(repo=repo.full_name, pages=pages).warning("github_pages_truncated")
        return items

    async def _list_commits(
        self,
        client: httpx.AsyncClient,
        repo: RepoRef,
        window: TimeWindow,
        branch: str | None,
    ) -> list[dict[str, Any]]:
        since, until = window.resolve()
        return await self._commits_between(client, repo, since, until, branch)

    async def _commits_between(
        self,
        client: httpx.AsyncClient,
        repo: RepoRef,
        since: datetime,
        until: datetime,
        branch: str | None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "since": to_github_timestamp(since),
            "until": to_github_timestamp(until),
            "per_page": PER_PAGE,
        }
        if branch:
            params["sha"] = branch
        url = f"{self.api_url}/repos/{repo.owner}/{repo.repo}/commits"
        return await self._paginate(client, url, params, repo)

    async def _release_commits(
        self, client: httpx.AsyncClient, repo: RepoRef, releases: list[ReleaseRef]
    ) -> list[dict[str, Any]]:
        """
        Union of every release's commits, newest first.

        A release whose tags GitHub does not know is skipped so the remaining
        releases still produce a changelog.
        """
        base = f"{self.api_url}/repos/{repo.owner}/{repo.repo}"
        by_sha: dict[str, dict[str, Any]] = {}
        for release in releases:
            log = logger.bind(repo=repo.full_name, tag=release.tag)
            try:
                if release.previous_tag:
                    url = f"{base}/compare/{release.previous_tag}...{release.tag}"
                    commits = await self._paginate(
                        client, url, {"per_page": PER_PAGE}, repo, key="commits"
                    )
                elif release.published_at:
                    until = to_naive_utc(release.published_at)
                    since = until - timedelta(days=RELEASE_LOOKBACK_DAYS)
                    target = (release.target_commitish or "").strip() or None
                    commits = await self._commits_between(client, repo, since, until, target)
                else:
                    commits = await self._paginate(
                        client, f"{base}/commits", {"sha": release.tag, "per_page": PER_PAGE}, repo
                    )
            except httpx.HTTPStatusError as e:
                if e.response.status_code not in SKIPPABLE_RELEASE_STATUSES:
                    raise
                log.bind(status=e.response.status_code).warning("github_release_skipped")
                continue

            log.bind(commits=len(commits)).debug("github_release_commits")
            for raw in commits:
                by_sha.setdefault(raw["sha"], raw)

        return sorted(by_sha.values(), key=commit_date, reverse=True)

    async def _filter_by_tags(
        self,
        client: httpx.AsyncClient,
        repo: RepoRef,
        commits: list[dict[str, Any]],
        window: TimeWindow,
    ) -> list[dict[str, Any]]:
        url = f"{self.api_url}/repos/{repo.owner}/{repo.repo}/tags"
        tags_by_sha: dict[str, set[str]] = {}
        for tag in await self._paginate(client, url, {"per_page": PER_PAGE}, repo):
            sha = (tag.get("commit") or {}).get("sha")
            if tag.get("name") and sha:
                tags_by_sha.setdefault(sha, set()).add(tag["name"])

        kept = [
            raw
            for raw in commits
            if matches_filters(
                tags_by_sha.get(raw["sha"], set()), window.include_tags, window.exclude_tags
            )
        ]
        logger.bind(repo=repo.full_name, before=len(commits), after=len(kept)).info(
            "github_commits_filtered_by_tag"
        )
        return kept

    async def _filter_by_labels(
        self,
        client: httpx.AsyncClient,
        repo: RepoRef,
        commits: list[dict[str, Any]],
        window: TimeWindow,
    ) -> list[dict[str, Any]]:
        semaphore = asyncio.Semaphore(DETAIL_CONCURRENCY)

        async def labels(raw: dict[str, Any]) -> set[str]:
            async with semaphore:
                return await self._commit_labels(client, repo, raw["sha"])

        label_sets = await asyncio.gather(*(labels(raw) for raw in commits))
        kept = [
            raw
            for raw, found in zip(commits, label_sets)
            if matches_filters(found, window.include_labels, window.exclude_labels)
        ]
        logger.bind(repo=repo.full_name, before=len(commits), after=len(kept)).info(
            "github_commits_filtered_by_label"
        )
        return kept

    async def _commit_labels(self, client: httpx.AsyncClient, repo: RepoRef, sha: str) -> set[str]:
        """Labels of the pull requests that introduced ``sha``."""
        url = f"{self.api_url}/repos/{repo.owner}/{repo.repo}/commits/{sha}/pulls"
        try:
            pulls = (await self._get(client, url)).json()
        except httpx.HTTPError as e:
            # Unlabelled rather than failing the window
            logger.bind(sha=sha[:7], error=str(e)).warning("github_commit_labels_failed")
            return set()
        return {
            label["name"]
            for pull in pulls
            for label in pull.get("labels") or []
            if label.get("name")
        }

    async def _commit_detail(
        self, client: httpx.AsyncClient, repo: RepoRef, raw: dict[str, Any]
    ) -> CommitInfo:
        sha = raw["sha"]
        message = (raw.get("commit") or {}).get("message", "")
        author = contributor_name(raw)
        url = f"{self.api_url}/repos/{repo.owner}/{repo.repo}/commits/{sha}"
        try:
            data = (await self._get(client, url)).json()
        except httpx.HTTPError as e:
            # One unreadable commit should not sink the whole window
            logger.bind(sha=sha[:7], error=str(e)).warning("github_commit_detail_failed")
            return CommitInfo(sha=sha, message=message, author=author)

        stats = data.get("stats") or {}
        return CommitInfo(
            sha=sha,
            message=message,
            author=author,
            additions=stats.get("additions", 0) or 0,
            deletions=stats.get("deletions", 0) or 0,
            diff=build_diff_preview(data.get("files") or [], self.diff_preview_chars),
        )
