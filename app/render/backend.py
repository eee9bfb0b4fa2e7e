"""HTTP client for the remote media render service."""

from typing import Any

import httpx

from app.config import get_config
from app.core.errors import RenderTriggerError
from app.core.logging import get_logger
from app.core.retry import RetryConfig, http_retry_config, retry_with_backoff
from app.schemas.record import VideoNarrative
from app.schemas.render import RenderProgress, RenderTriggerResult

logger = get_logger(__name__)


def build_input_props(narrative: VideoNarrative, metadata: dict[str, Any]) -> dict[str, Any]:
    """Composition input: repository slug, release tag and the narrative lists."""
    video_data = {
        "langCode": metadata.get("lang_code", "en"),
        "topChanges": [h.model_dump() for h in narrative.top_highlights],
        "allChanges": list(narrative.scrolling_changes),
    }
    return {
        "repositorySlug": metadata.get("repo_name", "repository"),
        "releaseTag": metadata.get("release_tag", "Latest Update"),
        "openaiGeneration": video_data,
        **video_data,
    }


def parse_progress(data: dict[str, Any]) -> RenderProgress:
    """Map the backend progress document onto RenderProgress."""
    if data.get("fatalErrorEncountered"):
        errors = data.get("errors") or []
        message = data.get("error") or (errors[0].get("message") if errors else None)
        return RenderProgress(status="failed", error=message or "Render failed")

    raw = float(data.get("overallProgress") or 0)
    progress = max(0, min(100, round(raw * 100 if raw <= 1 else raw)))

    if data.get("done"):
        output = data.get("outputFile") or data.get("outputKey")
        if not output:
            return RenderProgress(status="failed", error="Render finished without an output file")
        if output.startswith(("http://", "https://")):
            return RenderProgress(status="succeeded", progress=100, artifact_url=output)
        return RenderProgress(status="succeeded", progress=100, output_key=output)

    return RenderProgress(status="rendering" if progress > 0 else "pending", progress=progress)


class HttpRenderBackend:
    """
    Render backend reached over HTTP.

    POST {base}/renders starts a render and returns ``renderId`` and
    ``bucketName``; GET {base}/renders/{id} returns its progress document.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        callback_url: str | None = None,
        composition: str | None = None,
        client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
    ):
        config = get_config()
        self.base_url = (base_url or config.render.backend_url).rstrip("/")
        self.token = token if token is not None else config.render.backend_token
        self.callback_url = callback_url if callback_url is not None else config.render.callback_url
        self.composition = composition or config.render.composition
        self.retry_config = retry_config or http_retry_config(
            max_attempts=config.http.max_attempts,
            backoff_base=config.http.backoff_base,
            backoff_max=config.http.backoff_max,
        )
        self._client = client
        self._timeout = config.http.timeout_seconds

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self, method: str, path: str, operation: str, **kwargs: Any
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"

        async def do_request(client: httpx.AsyncClient) -> dict[str, Any]:
            async def call() -> httpx.Response:
                resp = await client.request(method, url, headers=self._headers(), **kwargs)
                resp.raise_for_status()
                return resp

            resp = await retry_with_backoff(call, config=self.retry_config, operation_name=operation)
            return resp.json()

        if self._client is not None:
            return await do_request(self._client)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await do_request(client)

    async def trigger(
        self, narrative: VideoNarrative, metadata: dict[str, Any]
    ) -> RenderTriggerResult:
        if not self.base_url:
            raise RenderTriggerError("Render backend not configured")

        payload: dict[str, Any] = {
            "composition": self.composition,
            "inputProps": build_input_props(narrative, metadata),
        }
        if self.callback_url:
            payload["callbackUrl"] = self.callback_url

        try:
            data = await self._request("POST", "/renders", "render:trigger", json=payload)
        except (httpx.HTTPError, ValueError) as e:
            logger.bind(error=str(e)).error("render_trigger_request_failed")
            raise RenderTriggerError(f"Render backend rejected trigger: {e}") from e

        render_id = data.get("renderId")
        if not render_id:
            raise RenderTriggerError("Render backend returned no renderId")

        logger.bind(render_id=render_id, bucket=data.get("bucketName")).info("render_triggered")
        return RenderTriggerResult(render_id=render_id, location_ref=data.get("bucketName"))

    async def status(self, render_id: str, location_ref: str | None = None) -> RenderProgress:
        """Fetch progress for one render. HTTP errors propagate after retries."""
        params = {"bucketName": location_ref} if location_ref else None
        data = await self._request(
            "GET", f"/renders/{render_id}", f"render:status:{render_id}", params=params
        )
        return parse_progress(data)
