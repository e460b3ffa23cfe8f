"""
Pipeline Board - CRM data API client

Routes used by the board:
- GET   pipeline                  -> raw heterogeneous feed
- PATCH jobs/{id}/stage           -> {stage, reason, updated_by}
- PATCH customers/{id}/stage      -> {stage, reason, updated_by}
- PUT   projects/{id}             -> FULL project payload + stage (no partial route)
- POST  jobs/{id}/quotes          -> {templateId}
- POST  invoices                  -> {jobId, templateId}

Auth: header Authorization: Bearer {token} (token from the auth collaborator).
Every call has an explicit client-side deadline.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional
import httpx
from pydantic import BaseModel
from pipeline_board import config
from pipeline_board.models import ItemKind, PipelineItem, Stage
from pipeline_board.services.cache import TTLCache
from pipeline_board.services.errors import (
    NetworkFailure,
    NotAuthenticated,
    RequestTimeout,
    SessionExpired,
)

logger = logging.getLogger("crm_api")

PIPELINE_CACHE_KEY = "pipeline"
DEFAULT_ACTOR = "current_user"

QUOTE_TEMPLATE_ID = "default_quote"
INVOICE_TEMPLATE_ID = "default_invoice"


class StageRoute(BaseModel):
    """Resolved server call for one stage change"""
    method: str
    path: str
    body: Dict[str, Any]


def resolve_route(item: PipelineItem, stage: Stage, reason: str, actor: Optional[str]) -> StageRoute:
    """
    Pick the endpoint from the item's kind (assigned at normalization).

    Projects have no partial-update route: the full mutable payload is
    rebuilt from the locally held copy.
    """
    updated_by = actor or DEFAULT_ACTOR
    stage = Stage(stage)

    if item.kind == ItemKind.JOB:
        return StageRoute(
            method="PATCH",
            path=f"jobs/{item.entity_id}/stage",
            body={"stage": stage.value, "reason": reason, "updated_by": updated_by},
        )
    if item.kind == ItemKind.CUSTOMER:
        return StageRoute(
            method="PATCH",
            path=f"customers/{item.entity_id}/stage",
            body={"stage": stage.value, "reason": reason, "updated_by": updated_by},
        )
    if item.kind == ItemKind.PROJECT:
        work = item.work_item
        return StageRoute(
            method="PUT",
            path=f"projects/{item.entity_id}",
            body={
                "project_name": work.display_name if work else None,
                "project_type": work.display_type if work else None,
                "date_of_measure": work.measured_on if work else None,
                "notes": work.notes if work else None,
                "stage": stage.value,
                "updated_by": updated_by,
            },
        )
    raise ValueError(f"Unknown pipeline item kind: {item.kind!r}")


class CrmApiClient:
    def __init__(
        self,
        base_url: str = config.BACKEND_URL,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        fetch_timeout: float = config.PIPELINE_FETCH_TIMEOUT,
        update_timeout: float = config.STAGE_UPDATE_TIMEOUT,
        automation_timeout: float = config.AUTOMATION_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider or (lambda: None)
        self.fetch_timeout = fetch_timeout
        self.update_timeout = update_timeout
        self.automation_timeout = automation_timeout
        self._transport = transport
        self.cache = cache if cache is not None else TTLCache(config.PIPELINE_CACHE_TTL)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        token = self._token_provider()
        if not token:
            raise NotAuthenticated("Not authenticated")
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def _send(self, method: str, path: str, timeout: float, body: Optional[Dict[str, Any]] = None) -> httpx.Response:
        headers = self._headers()
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            return await client.request(method, self._url(path), json=body, headers=headers)

    async def request(self, method: str, path: str, timeout: float,
                      body: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises RequestTimeout / SessionExpired / NetworkFailure.
        """
        logger.debug(f"[CRM_API] {method} {path}")
        try:
            resp = await asyncio.wait_for(self._send(method, path, timeout, body), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"[CRM_API] timeout after {timeout}s: {method} {path}")
            raise RequestTimeout(f"Request timeout: {method} {path}") from e
        except httpx.HTTPError as e:
            logger.warning(f"[CRM_API] connection error: {method} {path} ({e})")
            raise NetworkFailure(f"Connection error: {method} {path}: {e}") from e

        if resp.status_code == 401:
            logger.error(f"[CRM_API] 401 on {method} {path}: token invalid or expired")
            raise SessionExpired("Unauthorized - please log in again", status_code=401)

        if resp.status_code < 200 or resp.status_code >= 300:
            detail = resp.text[:200]
            logger.warning(f"[CRM_API] {method} {path} -> {resp.status_code}: {detail}")
            raise NetworkFailure(
                f"{method} {path} failed: {resp.status_code}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    # ==================== PIPELINE ====================

    async def fetch_pipeline(self, use_cache: bool = True) -> Any:
        """Raw feed, served from the TTL cache when fresh"""
        if use_cache:
            cached = self.cache.get(PIPELINE_CACHE_KEY)
            if cached is not None:
                logger.debug("[CRM_API] pipeline served from cache")
                return cached

        data = await self.request("GET", "pipeline", timeout=self.fetch_timeout)
        self.cache.set(PIPELINE_CACHE_KEY, data)
        return data

    def invalidate_pipeline(self):
        self.cache.invalidate(PIPELINE_CACHE_KEY)

    # ==================== MUTATIONS ====================

    async def update_stage(self, route: StageRoute, item_id: Optional[str] = None) -> Any:
        try:
            result = await self.request(route.method, route.path, timeout=self.update_timeout, body=route.body)
        except NetworkFailure as e:
            e.item_id = item_id
            raise
        self.invalidate_pipeline()
        return result

    async def create_quote(self, job_id: str) -> Any:
        return await self.request(
            "POST", f"jobs/{job_id}/quotes",
            timeout=self.automation_timeout,
            body={"templateId": QUOTE_TEMPLATE_ID},
        )

    async def create_invoice(self, job_id: str) -> Any:
        return await self.request(
            "POST", "invoices",
            timeout=self.automation_timeout,
            body={"jobId": job_id, "templateId": INVOICE_TEMPLATE_ID},
        )
