"""Tests for deterministic changelog content assembly."""

from app.pipeline.content import (
    assemble_content,
    build_fallback_overview,
    change_stats_from,
    select_top_commits,
)
from app.schemas.github import CommitInfo, RepoStats
from app.schemas.record import CommitSummary


def _commit(sha: str, additions: int, deletions: int) -> CommitInfo:
    return CommitInfo(sha=sha, message=f"Commit {sha}", additions=additions, deletions=deletions)


class TestSelectTopCommits:
    """Tests for select_top_commits."""

    def test_orders_by_churn_descending(self):
        """Should rank commits by additions + deletions."""
        commits = [_commit("a", 1, 1), _commit("b", 50, 50), _commit("c", 10, 0)]
        assert [c.sha for c in select_top_commits(commits)] == ["b", "c", "a"]

    def test_limits_to_k(self):
        """Should return at most k commits."""
        commits = [_commit(str(i), i, 0) for i in range(20)]
        top = select_top_commits(commits, k=10)
        assert len(top) == 10
        assert top[0].sha == "19"

    def test_ties_keep_original_order(self):
        """Should keep newest-first order among equal churn."""
        commits = [_commit("new", 5, 5), _commit("old", 10, 0)]
        assert [c.sha for c in select_top_commits(commits)] == ["new", "old"]

    def test_empty(self):
        """Should handle an empty commit list."""
        assert select_top_commits([]) == []


class TestChangeStatsFrom:
    """Tests for change_stats_from."""

    def test_maps_additions_and_deletions(self):
        """Should map additions to added and deletions to removed."""
        stats = change_stats_from(RepoStats(commits=3, additions=120, deletions=30))
        assert (stats.added, stats.modified, stats.removed) == (120, 0, 30)


class TestBuildFallbackOverview:
    """Tests for the template used when the AI provider is unavailable."""

    def test_contains_literal_counts_and_contributors(self):
        """Should include exact counts and every contributor name."""
        stats = RepoStats(
            commits=4,
            additions=120,
            deletions=30,
            contributors=["a", "b"],
            commit_messages=["Add thing\n\nbody", "Fix bug"],
        )
        text = build_fallback_overview("acme/widgets", "Last 7 days", stats)

        assert text.startswith("# Last 7 days Update for acme/widgets")
        assert "**4** commits" in text
        assert "**2** active contributors" in text
        assert "**120** lines added" in text
        assert "**30** lines removed" in text
        assert "## Contributors\n\n- a\n- b\n" in text
        assert "- Add thing" in text
        assert "body" not in text

    def test_truncates_recent_commits(self):
        """Should list a bounded number of titles and count the rest."""
        stats = RepoStats(
            commits=15,
            additions=0,
            deletions=0,
            commit_messages=[f"Commit {i}" for i in range(15)],
        )
        text = build_fallback_overview("acme/widgets", "Last 7 days", stats, recent_titles=10)
        assert "- Commit 9" in text
        assert "- Commit 10" not in text
        assert "...and 5 more commits" in text

    def test_no_commits(self):
        """Should say nothing happened for an empty window."""
        stats = RepoStats(commits=0, additions=0, deletions=0)
        text = build_fallback_overview("acme/widgets", "Last 24 hours", stats)
        assert "No commits were made during this period." in text
        assert "## Recent Commits" not in text
        assert "## Contributors" not in text


class TestAssembleContent:
    """Tests for assemble_content."""

    def test_overview_then_one_section_per_summary(self):
        """Should append a Key Changes section with heading, body and trailer."""
        summaries = [
            CommitSummary(
                sha="a1",
                message="Add OAuth login\n\nDetails here",
                additions=300,
                deletions=20,
                ai_summary="Users can sign in with GitHub.",
            ),
            CommitSummary(
                sha="b2", message="Fix typo", additions=1, deletions=1, ai_summary="Docs fix."
            ),
        ]
        content = assemble_content("# Overview\n\nGreat week.\n", summaries)

        assert content.startswith("# Overview\n\nGreat week.\n\n## Key Changes")
        assert "### Add OAuth login\n\nUsers can sign in with GitHub.\n\n+300 −20 lines" in content
        assert "### Fix typo\n\nDocs fix.\n\n+1 −1 lines" in content
        assert content.index("Add OAuth login") < content.index("Fix typo")
        assert "Details here" not in content

    def test_no_summaries(self):
        """Should return only the overview when there are no summaries."""
        content = assemble_content("# Overview", [])
        assert content == "# Overview\n"
        assert "Key Changes" not in content

    def test_deterministic(self):
        """Should produce identical output for identical input."""
        summaries = [CommitSummary(sha="a", message="A", ai_summary="x")]
        assert assemble_content("o", summaries) == assemble_content("o", summaries)
