"""HTTP(S) probe — the network side of a check, kept apart from recording."""

from __future__ import annotations

import logging
import time

import httpx

from uptrack.probe.engine import ProbeOutcome

logger = logging.getLogger(__name__)

USER_AGENT = "uptrack-monitor/0.1"


def run_http_probe(
    url: str,
    method: str = "GET",
    timeout_ms: int = 10_000,
    transport: httpx.BaseTransport | None = None,
) -> ProbeOutcome:
    """Issue one request and report status code + elapsed time.

    Never raises: timeouts and transport errors come back as an outcome
    with ``error`` set.
    """
    t0 = time.perf_counter()
    try:
        with httpx.Client(
            timeout=timeout_ms / 1000,
            follow_redirects=False,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        ) as client:
            resp = client.request(method.upper(), url)
        elapsed = (time.perf_counter() - t0) * 1000
        return ProbeOutcome(status_code=resp.status_code, elapsed_ms=round(elapsed))
    except httpx.TimeoutException:
        elapsed = (time.perf_counter() - t0) * 1000
        return ProbeOutcome(elapsed_ms=round(elapsed), error="Timeout")
    except httpx.HTTPError as e:
        elapsed = (time.perf_counter() - t0) * 1000
        logger.debug("Probe %s %s failed: %s", method, url, e)
        return ProbeOutcome(elapsed_ms=round(elapsed), error=f"{type(e).__name__}: {e}")
