"""Tests for the HTTP render backend client."""

import json

import httpx
import pytest

from app.core.errors import RenderTriggerError
from app.core.retry import http_retry_config
from app.render.backend import HttpRenderBackend, build_input_props, parse_progress
from app.schemas.record import Highlight, VideoNarrative

NARRATIVE = VideoNarrative(
    top_highlights=[Highlight(title="OAuth login", description="Sign in with GitHub")],
    scrolling_changes=["OAuth login: Sign in with GitHub", "Fix typo: Docs"],
    source="summaries",
)
METADATA = {"repo_name": "acme/widgets", "release_tag": "v1.2.0", "lang_code": "en"}


def _backend(handler, **kwargs) -> HttpRenderBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRenderBackend(
        base_url="https://render.example.com/",
        client=client,
        retry_config=http_retry_config(max_attempts=3, backoff_base=0.0),
        **kwargs,
    )


class TestBuildInputProps:
    """Tests for build_input_props."""

    def test_shapes_composition_input(self):
        """Should carry slug, tag and both change lists."""
        props = build_input_props(NARRATIVE, METADATA)

        assert props["repositorySlug"] == "acme/widgets"
        assert props["releaseTag"] == "v1.2.0"
        assert props["topChanges"] == [
            {"title": "OAuth login", "description": "Sign in with GitHub"}
        ]
        assert props["allChanges"] == NARRATIVE.scrolling_changes
        assert props["openaiGeneration"]["topChanges"] == props["topChanges"]

    def test_defaults(self):
        """Should fall back to neutral defaults without metadata."""
        props = build_input_props(NARRATIVE, {})
        assert props["repositorySlug"] == "repository"
        assert props["releaseTag"] == "Latest Update"
        assert props["langCode"] == "en"


class TestParseProgress:
    """Tests for parse_progress."""

    def test_in_progress_fraction(self):
        """Should convert fractional progress to a percentage."""
        progress = parse_progress({"overallProgress": 0.42, "done": False})
        assert progress.status == "rendering"
        assert progress.progress == 42

    def test_not_started(self):
        """Should report pending before any progress."""
        assert parse_progress({}).status == "pending"

    def test_done_with_url(self):
        """Should treat absolute output files as artifact URLs."""
        progress = parse_progress(
            {"done": True, "overallProgress": 1, "outputFile": "https://cdn/out.mp4"}
        )
        assert progress.status == "succeeded"
        assert progress.artifact_url == "https://cdn/out.mp4"

    def test_done_with_key(self):
        """Should treat relative output files as object keys."""
        progress = parse_progress({"done": True, "outputFile": "renders/abc/out.mp4"})
        assert progress.status == "succeeded"
        assert progress.output_key == "renders/abc/out.mp4"
        assert progress.artifact_url is None

    def test_done_without_output_fails(self):
        """Should fail a finished render with no output."""
        progress = parse_progress({"done": True})
        assert progress.status == "failed"
        assert progress.error

    def test_fatal_error(self):
        """Should surface the first backend error message."""
        progress = parse_progress(
            {"fatalErrorEncountered": True, "errors": [{"message": "Chromium crashed"}]}
        )
        assert progress.status == "failed"
        assert progress.error == "Chromium crashed"


@pytest.mark.asyncio
class TestHttpRenderBackend:
    """Tests for HttpRenderBackend against a mock transport."""

    async def test_trigger_posts_composition(self):
        """Should POST the composition and return the render id and bucket."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"renderId": "r-1", "bucketName": "renders-bucket"})

        backend = _backend(
            handler, token="secret", callback_url="https://app.example.com/api/renders/callback"
        )
        result = await backend.trigger(NARRATIVE, METADATA)

        assert result.render_id == "r-1"
        assert result.location_ref == "renders-bucket"
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://render.example.com/renders"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["inputProps"]["repositorySlug"] == "acme/widgets"
        assert body["callbackUrl"] == "https://app.example.com/api/renders/callback"

    async def test_trigger_client_error_not_retried(self):
        """Should raise RenderTriggerError on the first 4xx."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": "bad props"})

        with pytest.raises(RenderTriggerError):
            await _backend(handler).trigger(NARRATIVE, METADATA)
        assert len(calls) == 1

    async def test_trigger_server_error_retried(self):
        """Should retry 5xx responses up to the attempt cap."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"renderId": "r-2"})

        result = await _backend(handler).trigger(NARRATIVE, METADATA)
        assert result.render_id == "r-2"
        assert len(calls) == 3

    async def test_trigger_without_render_id(self):
        """Should reject responses missing a render id."""
        backend = _backend(lambda request: httpx.Response(200, json={"ok": True}))
        with pytest.raises(RenderTriggerError, match="renderId"):
            await backend.trigger(NARRATIVE, METADATA)

    async def test_status_passes_bucket(self):
        """Should GET the render with its bucket and parse the document."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"overallProgress": 0.5})

        progress = await _backend(handler).status("r-1", "renders-bucket")

        assert progress.progress == 50
        assert seen[0].url.path == "/renders/r-1"
        assert seen[0].url.params["bucketName"] == "renders-bucket"

    async def test_status_errors_propagate(self):
        """Should raise HTTP errors to the poller after retries."""
        backend = _backend(lambda request: httpx.Response(404))
        with pytest.raises(httpx.HTTPStatusError):
            await backend.status("missing")
