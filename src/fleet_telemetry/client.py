import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Iterable, Sequence
from urllib.parse import quote

import httpx

from fleet_telemetry.exceptions import ConfigurationError, FetchExhausted

logger = logging.getLogger(__name__)

_URL_PLACEHOLDER_RE = re.compile(r"\{url\}", re.IGNORECASE)


# ── Fallback templates ───────────────────────────────────────────────


def validate_templates(templates: Iterable[str]) -> list[str]:
    """Check fallback templates at startup. Raises ConfigurationError."""
    checked = []
    for template in templates:
        if not isinstance(template, str) or not template.strip():
            raise ConfigurationError(f"Blank fallback template: {template!r}")
        template = template.strip()
        if not template.lower().startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Fallback template must be an http(s) URL: {template!r}"
            )
        checked.append(template)
    return checked


def expand_fallbacks(url: str, templates: Iterable[str]) -> list[str]:
    """Apply each proxy template to url, in order.

    A ``{url}`` placeholder receives the percent-encoded target; a template
    without one is used as a prefix (``https://proxy.example/?`` + url).
    """
    out = []
    for template in templates:
        if _URL_PLACEHOLDER_RE.search(template):
            out.append(_URL_PLACEHOLDER_RE.sub(quote(url, safe=""), template))
        else:
            out.append(f"{template}{url}")
    return out


# ── Orchestrator ─────────────────────────────────────────────────────


@dataclass
class FetchAttempt:
    url: str
    ok: bool
    latency: float  # seconds
    error: Exception | None = None


class FetchOrchestrator:
    """GET a JSON document, walking through proxy fallbacks on failure.

    Any transport error, non-2xx status or non-JSON body counts as a
    failure and moves on to the next candidate. Calls share no mutable
    state, so cancelling one never affects another.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        fallback_templates: Sequence[str] = (),
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self.fallback_templates = validate_templates(fallback_templates)
        self.timeout = timeout
        self.headers = {"Accept": "application/json", **(headers or {})}

    async def __aenter__(self) -> "FetchOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def candidates(
        self,
        primary_url: str,
        fallback_templates: Sequence[str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> list[str]:
        if params:
            primary_url = str(httpx.URL(primary_url).copy_merge_params(params))
        templates = (
            self.fallback_templates
            if fallback_templates is None
            else validate_templates(fallback_templates)
        )
        return [primary_url, *expand_fallbacks(primary_url, templates)]

    async def fetch(
        self,
        primary_url: str,
        fallback_templates: Sequence[str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Return the decoded JSON body from the first endpoint that works.

        Raises FetchExhausted, chained to the last failure, when none do.
        """
        attempts: list[FetchAttempt] = []
        try:
            endpoints = self.candidates(primary_url, fallback_templates, params)
        except httpx.InvalidURL as e:
            attempts.append(FetchAttempt(primary_url, False, 0.0, e))
            raise FetchExhausted(primary_url, attempts) from e
        for i, endpoint in enumerate(endpoints):
            started = time.monotonic()
            try:
                data = await self._attempt(endpoint)
            except asyncio.CancelledError:
                raise
            # InvalidURL is not an HTTPError
            except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
                attempts.append(
                    FetchAttempt(endpoint, False, time.monotonic() - started, e)
                )
                if i + 1 < len(endpoints):
                    logger.warning(
                        "Request to %s failed (%s), retrying via fallback %d/%d",
                        endpoint,
                        e,
                        i + 1,
                        len(endpoints) - 1,
                    )
                continue
            latency = time.monotonic() - started
            attempts.append(FetchAttempt(endpoint, True, latency))
            logger.debug("Fetched %s in %.2fs", endpoint, latency)
            return data

        raise FetchExhausted(primary_url, attempts) from attempts[-1].error

    async def _attempt(self, endpoint: str) -> Any:
        resp = await self._client.get(
            endpoint,
            headers=self.headers,
            timeout=self.timeout,
            follow_redirects=True,
        )
        resp.raise_for_status()
        # json.JSONDecodeError is a ValueError
        return resp.json()
