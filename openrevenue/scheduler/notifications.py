"""
Job summary notifications.

Every cadence run is logged; when webhooks are configured the same one-line
summary is posted to Slack and/or Discord.
"""

import logging
from typing import Any, Dict, Optional

from ..common.http_client import create_api_client
from ..config.settings import settings

logger = logging.getLogger(__name__)

JOB_TITLES = {
    "sync": "Revenue Sync",
    "leaderboard": "Leaderboard Refresh",
    "milestones": "Milestone Check",
    "rotation": "Featured Rotation",
}

WEBHOOK_TIMEOUT = 10.0


def format_job_summary(
    job_name: str,
    stats: Dict[str, Any],
    duration_seconds: float,
    error: Optional[str] = None,
) -> str:
    title = JOB_TITLES.get(job_name, job_name)
    if error:
        return f":x: *OpenRevenue {title} FAILED* after {duration_seconds:.1f}s: {error}"

    emoji = ":warning:" if stats.get("errors") else ":white_check_mark:"
    counters = ", ".join(f"{key}={value}" for key, value in stats.items()) or "no changes"
    return f"{emoji} *OpenRevenue {title}* ({duration_seconds:.1f}s): {counters}"


async def send_job_summary(
    job_name: str,
    stats: Dict[str, Any],
    duration_seconds: float,
    error: Optional[str] = None,
) -> None:
    """Log a job summary and post it to every configured webhook."""
    text = format_job_summary(job_name, stats, duration_seconds, error=error)
    if error:
        logger.warning(text)
    else:
        logger.info(text)

    if settings.slack_webhook_url:
        await _post_webhook("Slack", settings.slack_webhook_url, {
            "text": text,
            "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
        })
    if settings.discord_webhook_url:
        # Discord reads 'content', not 'text'
        await _post_webhook("Discord", settings.discord_webhook_url, {"content": text})


async def _post_webhook(label: str, url: str, payload: Dict[str, Any]) -> bool:
    """POST payload to a webhook. Failures are logged, never raised."""
    try:
        async with create_api_client(timeout=WEBHOOK_TIMEOUT) as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
    except Exception as e:
        logger.error(f"Failed to send {label} notification: {e}")
        return False
    logger.debug(f"{label} notification sent")
    return True
