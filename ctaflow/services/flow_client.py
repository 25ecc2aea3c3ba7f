# ctaflow/services/flow_client.py
"""
HTTP client for the flow API and template catalog collaborators.

409 responses become UsageLockConflict; every other failure (network error or
non-2xx status) becomes TransportFailure. Nothing here touches the graph.
"""
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ctaflow.core import config
from ctaflow.core.exceptions import TransportFailure, UsageLockConflict
from ctaflow.core.logging_config import get_flow_api_logger, log_api_request, log_api_response
from ctaflow.schemas.flow import (
    CreateFlowResponse, FlowDocument, FlowUsageResponse, ForkFlowResponse,
    PublishFlowResponse, UpdateFlowResponse
)
from ctaflow.schemas.template import TemplateListResponse

log = get_flow_api_logger()


class FlowApiClient:
    """
    Thin wrapper over httpx.Client bound to one business context.

    Args:
        business_id: Sent as X-Business-Id on every request
        base_url/token/timeout: Override the values from config
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        business_id: Optional[str] = None,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.business_id = business_id
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = token if token is not None else config.API_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if business_id:
            headers[config.BUSINESS_HEADER] = business_id
        self.http = httpx.Client(
            base_url=config.normalize_base_url(base_url or config.API_BASE_URL) + "/",
            headers=headers,
            timeout=timeout if timeout is not None else config.HTTP_TIMEOUT,
            transport=transport,
        )

    def close(self) -> None:
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ────────────────────────────────────────────
    # Core request
    # ────────────────────────────────────────────

    def _request(self, method: str, path: str, json: Any = None, params: Optional[dict] = None) -> Dict[str, Any]:
        log_api_request(log, method, path, data=json, headers=dict(self.http.headers))
        try:
            response = self.http.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            log_api_response(log, None, error=e)
            raise TransportFailure(f"Network error calling {method} {path}: {e}") from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if response.status_code == 409:
            log.warning(f"⚠️ {method} {path} -> 409 usage lock")
            raise UsageLockConflict(data.get("campaigns") or [])
        if response.status_code >= 400:
            message = data.get("message") or f"{method} {path} failed with HTTP {response.status_code}"
            error = TransportFailure(message, status_code=response.status_code, payload=data)
            log_api_response(log, response.status_code, error=error)
            raise error

        log_api_response(log, response.status_code, data)
        return data

    # ────────────────────────────────────────────
    # Flow endpoints
    # ────────────────────────────────────────────

    def get_flow(self, flow_id: str) -> FlowDocument:
        return FlowDocument.model_validate(self._request("GET", f"flow/{quote(flow_id)}"))

    def create_flow(self, payload: dict) -> CreateFlowResponse:
        return CreateFlowResponse.model_validate(self._request("POST", "flow", json=payload))

    def update_flow(self, flow_id: str, payload: dict) -> UpdateFlowResponse:
        return UpdateFlowResponse.model_validate(self._request("PUT", f"flow/{quote(flow_id)}", json=payload))

    def publish_flow(self, flow_id: str) -> PublishFlowResponse:
        result = PublishFlowResponse.model_validate(self._request("POST", f"flow/{quote(flow_id)}/publish"))
        if not result.success:
            raise TransportFailure(result.message or "Failed to publish", payload=result.model_dump())
        return result

    def get_usage(self, flow_id: str) -> FlowUsageResponse:
        return FlowUsageResponse.model_validate(self._request("GET", f"flow/{quote(flow_id)}/usage"))

    def fork_flow(self, flow_id: str) -> ForkFlowResponse:
        return ForkFlowResponse.model_validate(self._request("POST", f"flow/{quote(flow_id)}/fork"))

    # ────────────────────────────────────────────
    # Template catalog endpoints
    # ────────────────────────────────────────────

    def list_templates(self, params: dict) -> TemplateListResponse:
        path = f"templates/{quote(self.business_id or '')}"
        return TemplateListResponse.model_validate(self._request("GET", path, params=params))

    def get_template(self, name: str, language: Optional[str] = None) -> Dict[str, Any]:
        path = f"templates/{quote(self.business_id or '')}/{quote(name)}"
        params = {"language": language} if language else None
        data = self._request("GET", path, params=params)
        detail = data.get("template")
        return detail if isinstance(detail, dict) else data
