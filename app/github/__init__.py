from app.github.client import GitHubStatsFetcher

__all__ = ["GitHubStatsFetcher"]
