from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from app.core.config import settings
from app.core.errors import UpstreamError

logger = structlog.get_logger("happyrobot")

DETAIL_STATUSES = ("completed", "running")


def _retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500

def _unwrap_detail(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    for key in ("run", "session", "data"):
        inner = data.get(key)
        if isinstance(inner, dict):
            return inner
    return data

def _json(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError as e:
        raise UpstreamError(f"invalid JSON from HappyRobot API ({r.request.url.path})",
                            status_code=r.status_code) from e

def _page_items(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("data") or data.get("runs") or []
    else:
        items = []
    return [i for i in items if isinstance(i, dict)] if isinstance(items, list) else []


class HappyRobotHTTPClient:
    """Client for the call platform runs API.

    The endpoint root (base URL + API version prefix) is fixed from
    configuration when the client is built.
    """

    def __init__(self, api_key: str | None = None, base_url: str | None = None, *,
                 org_id: str | None = None, use_case_id: str | None = None,
                 timeout: float | None = None, page_size: int | None = None,
                 detail_fetch_limit: int | None = None,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = settings.happyrobot_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.happyrobot_api_root).rstrip("/")
        self.org_id = settings.happyrobot_org_id if org_id is None else org_id
        self.use_case_id = settings.happyrobot_use_case_id if use_case_id is None else use_case_id
        self.timeout = timeout or settings.happyrobot_timeout_secs
        self.page_size = page_size or settings.happyrobot_page_size
        self.detail_fetch_limit = detail_fetch_limit or settings.happyrobot_detail_fetch_limit
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.org_id:
            self.headers["x-organization-id"] = self.org_id

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, headers=self.headers, timeout=self.timeout, transport=self.transport
        )

    @retry(retry=retry_if_exception(_retryable), stop=stop_after_attempt(3),
           wait=wait_exponential(min=0.5, max=4), reraise=True)
    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async with self._client() as c:
            r = await c.get(path, params=params)
        if r.status_code >= 500:
            r.raise_for_status()
        return r

    async def _get_or_raise(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            return await self._get(path, params)
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"HappyRobot API {e.response.status_code}: {e.response.text}",
                                status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"HappyRobot API unreachable: {e!r}") from e

    async def fetch_run(self, run_id: str, session_id: str | None = None) -> Optional[Dict[str, Any]]:
        """Run detail by id; the session endpoint answers when the run lookup 404s."""
        if not self.configured:
            raise UpstreamError("HappyRobot API key not configured")

        r = await self._get_or_raise(f"/runs/{run_id}")
        if r.status_code == 404 and session_id:
            logger.info("upstream.run_not_found", run_id=run_id, session_id=session_id)
            r = await self._get_or_raise(f"/sessions/{session_id}")
        if r.status_code == 404:
            return None
        if r.status_code >= 400:
            raise UpstreamError(f"HappyRobot API {r.status_code}: {r.text}", status_code=r.status_code)

        run = dict(_unwrap_detail(_json(r)))
        run["id"] = run.get("id") or run_id
        return run

    async def list_runs(self) -> List[Dict[str, Any]]:
        if not (self.configured and self.use_case_id):
            raise UpstreamError("HappyRobot credentials not configured")

        params: Dict[str, Any] = {"use_case_id": self.use_case_id, "page_size": self.page_size, "sort": "desc"}
        r = await self._get_or_raise("/runs/", params)
        if r.status_code >= 400:
            raise UpstreamError(f"HappyRobot API {r.status_code}: {r.text}", status_code=r.status_code)

        data = _json(r)
        runs = _page_items(data)
        if runs:
            return runs

        pagination = data.get("pagination") if isinstance(data, dict) else None
        total_pages = (pagination or {}).get("totalPages") or 1
        if total_pages > 1:
            # page 1 can come back empty while later pages hold the runs
            r = await self._get_or_raise("/runs/", {**params, "page": total_pages})
            if r.status_code < 400:
                return _page_items(_json(r))
        return []

    async def _with_detail(self, run: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = await self._get(f"/runs/{run.get('id')}")
            if r.status_code >= 400:
                return run
            detail = _json(r)
        except (httpx.HTTPError, UpstreamError) as e:
            logger.warning("upstream.detail_failed", run_id=run.get("id"), error=repr(e))
            return run
        return {**run, **detail} if isinstance(detail, dict) else run

    async def fetch_details(self, runs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Attach detail objects when the listing lacks sessions/events."""
        if runs and (runs[0].get("sessions") or runs[0].get("events")):
            return runs
        targets = [r for r in runs if r.get("status") in DETAIL_STATUSES][: self.detail_fetch_limit]
        return list(await asyncio.gather(*(self._with_detail(r) for r in targets)))
