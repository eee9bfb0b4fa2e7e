"""Deterministic changelog content assembly."""

from app.schemas.github import CommitInfo, RepoStats
from app.schemas.record import ChangeStats, CommitSummary


def select_top_commits(commits: list[CommitInfo], k: int = 10) -> list[CommitInfo]:
    """Top ``k`` commits by churn (additions + deletions), highest first.

    Ties keep their original (newest-first) order.
    """
    return sorted(commits, key=lambda c: c.churn, reverse=True)[:k]


def change_stats_from(stats: RepoStats) -> ChangeStats:
    return ChangeStats(added=stats.additions, modified=0, removed=stats.deletions)


def build_fallback_overview(
    repo_name: str,
    window_label: str,
    stats: RepoStats,
    recent_titles: int = 10,
) -> str:
    """
    Boilerplate changelog built only from aggregate stats.

    Used when the text-generation provider is unavailable. Always contains the
    literal commit/line counts and every contributor name.
    """
    lines = [
        f"# {window_label} Update for {repo_name}",
        "",
        "## Overview",
        "",
        f"This summary covers changes made to the repository for {window_label.lower()}.",
        "",
        "**Period Statistics:**",
        f"- **{stats.commits}** commits",
        f"- **{len(stats.contributors)}** active contributors",
        f"- **{stats.additions}** lines added",
        f"- **{stats.deletions}** lines removed",
        "",
        "## Highlights",
        "",
    ]

    if stats.commits > 0:
        lines.append(
            f"The team has been actively developing with {stats.commits} commits during this timeframe."
        )
    else:
        lines.append("No commits were made during this period.")

    titles = [m.split("\n", 1)[0].strip() for m in stats.commit_messages if m.strip()]
    if titles:
        lines += ["", "## Recent Commits", ""]
        lines += [f"- {title}" for title in titles[:recent_titles]]
        if len(titles) > recent_titles:
            lines.append(f"- ...and {len(titles) - recent_titles} more commits")

    if stats.contributors:
        lines += ["", "## Contributors", ""]
        lines += [f"- {name}" for name in stats.contributors]

    return "\n".join(lines) + "\n"


def assemble_content(overview: str, summaries: list[CommitSummary]) -> str:
    """Overall narrative followed by a Key Changes section, one entry per summary."""
    parts = [overview.rstrip()]
    if summaries:
        parts.append("## Key Changes")
        for summary in summaries:
            parts.append(
                f"### {summary.title}\n\n"
                f"{summary.ai_summary}\n\n"
                f"+{summary.additions} −{summary.deletions} lines"
            )
    return "\n\n".join(parts) + "\n"
