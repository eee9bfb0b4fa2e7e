"""Best-effort completion webhooks for async jobs."""

import httpx

from app.core.logging import get_logger
from app.schemas.job import WebhookPayload

logger = get_logger(__name__)


async def deliver_webhook(
    url: str,
    payload: WebhookPayload,
    timeout: float = 10.0,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """
    POST the job envelope to ``url`` once.

    Delivery is not retried and failures never propagate; the caller's job
    state is already final when this runs.

    Returns:
        True if the receiver answered with a 2xx status
    """
    body = payload.to_json_dict()
    log = logger.bind(job_id=payload.job_id, url=url, status=payload.status.value)

    async def post(c: httpx.AsyncClient) -> httpx.Response:
        return await c.post(url, json=body, headers={"User-Agent": "repatch-webhook/1.0"})

    try:
        if client is not None:
            resp = await post(client)
        else:
            async with httpx.AsyncClient(timeout=timeout) as c:
                resp = await post(c)
    except httpx.TimeoutException:
        log.warning("job_webhook_timeout")
        return False
    except httpx.HTTPError as e:
        log.bind(error=str(e)).warning("job_webhook_failed")
        return False

    if not resp.is_success:
        log.bind(response_status=resp.status_code).warning("job_webhook_rejected")
        return False

    log.info("job_webhook_delivered")
    return True
