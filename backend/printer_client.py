"""
Printer API client

Sends print jobs to the printer backends over HTTP. Any failure that may
succeed later (no endpoint configured, transport error, backend rejection)
is handed to the retry queue; the caller always gets a DispatchResult back.
"""

from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Literal, Optional
import enum

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from config import DispatchConfig
from errors import ConfigurationError, PayloadValidationError
from log_config import EventLogger, get_logger
from printer_selector import normalize_endpoint, resolve_endpoint
from retry_queue import RetryQueue

logger = get_logger("printer_client")
events = EventLogger("printer_client.events")

DEFAULT_FILE_TYPE = "application/pdf"
DEFAULT_FILE_NAME = "document.pdf"
PRINT_PATH = "/api/print"
HEALTH_PATH = "/health"

# ==================== Request/Response Models ====================

class PageColors(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    color_pages: List[int] = Field(default_factory=list, alias="colorPages")
    bw_pages: List[int] = Field(default_factory=list, alias="bwPages")


class PrintingOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_size: Literal["A4", "A3"] = Field(alias="pageSize")
    color: Literal["color", "bw", "mixed"]
    sided: Literal["single", "double"]
    copies: int = Field(gt=0)
    page_count: int = Field(default=1, gt=0, alias="pageCount")
    page_colors: Optional[PageColors] = Field(default=None, alias="pageColors")


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class PrintJobRequest(BaseModel):
    """One dispatch attempt: either a single legacy file or parallel file arrays"""
    model_config = ConfigDict(populate_by_name=True)

    # Legacy single-file form
    file_url: Optional[str] = Field(default=None, alias="fileUrl")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    file_type: Optional[str] = Field(default=None, alias="fileType")

    # Multi-file form
    file_urls: Optional[List[str]] = Field(default=None, alias="fileURLs")
    file_names: Optional[List[str]] = Field(default=None, alias="originalFileNames")
    file_types: Optional[List[str]] = Field(default=None, alias="fileTypes")

    printing_options: PrintingOptions = Field(alias="printingOptions")
    printer_index: int = Field(ge=1, alias="printerIndex")
    order_id: Optional[str] = Field(default=None, alias="orderId")
    customer_info: Optional[CustomerInfo] = Field(default=None, alias="customerInfo")

    @model_validator(mode="after")
    def _check_file_forms(self):
        if self.file_urls and self.file_url:
            raise ValueError("Provide either fileURLs or fileUrl, not both")

        if self.file_urls:
            for label, values in (("originalFileNames", self.file_names), ("fileTypes", self.file_types)):
                if values is not None and len(values) != len(self.file_urls):
                    raise ValueError(
                        f"{label} has {len(values)} entries but fileURLs has {len(self.file_urls)}"
                    )
        return self


class FailureKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    TRANSPORT = "transport"
    REJECTED = "rejected"


@dataclass
class DispatchResult:
    success: bool
    message: str = ""
    job_id: Optional[str] = None
    delivery_number: Optional[str] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    endpoint: Optional[str] = None
    queued_for_retry: bool = False

    @property
    def retryable(self) -> bool:
        return not self.success and self.failure_kind != FailureKind.VALIDATION

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.failure_kind is not None:
            data["failure_kind"] = self.failure_kind.value
        return data

# ==================== Payload / Error helpers ====================

def build_payload(request: PrintJobRequest) -> Dict[str, Any]:
    """Build the JSON body for POST /api/print"""
    if request.file_urls:
        count = len(request.file_urls)
        payload: Dict[str, Any] = {
            "fileURLs": list(request.file_urls),
            "originalFileNames": list(request.file_names or [f"file_{i}" for i in range(count)]),
            "fileTypes": list(request.file_types or [DEFAULT_FILE_TYPE] * count),
        }
    elif request.file_url:
        payload = {
            "fileUrl": request.file_url,
            "fileName": request.file_name or DEFAULT_FILE_NAME,
            "fileType": request.file_type or DEFAULT_FILE_TYPE,
        }
    else:
        raise PayloadValidationError("Print request has no file: fileURLs or fileUrl is required")

    payload["printingOptions"] = request.printing_options.model_dump(by_alias=True, exclude_none=True)
    payload["printerIndex"] = request.printer_index
    if request.order_id is not None:
        payload["orderId"] = request.order_id
    if request.customer_info is not None:
        payload["customerInfo"] = request.customer_info.model_dump(exclude_none=True)
    return payload


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def describe_http_error(response: httpx.Response) -> str:
    """'<status> <reason>: <error>' using whatever the error body carries"""
    status_line = f"{response.status_code} {response.reason_phrase}".strip()

    body = _json_body(response)
    detail = None
    if isinstance(body, str):
        detail = body
    elif isinstance(body, dict):
        detail = body.get("error") or body.get("message") or body.get("detail")
    elif body is None and response.text:
        detail = response.text.strip()

    if detail:
        return f"{status_line}: {detail}"
    return status_line

# ==================== Client ====================

class PrinterClient:
    """Printer API client backed by an in-process retry queue"""

    def __init__(self, config: DispatchConfig, retry_queue: Optional[RetryQueue] = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.endpoints = [normalize_endpoint(url) for url in config.endpoints if url.strip()]
        self.retry_queue = retry_queue
        self._http_client = http_client

        if retry_queue is not None:
            retry_queue.attach(self.replay)

    def _headers(self) -> Dict[str, str]:
        return {
            "X-API-Key": self.config.api_key,
            "Content-Type": "application/json",
        }

    @asynccontextmanager
    async def _session(self):
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
            yield client

    def get_printer_url(self, printer_index: int) -> Optional[str]:
        return resolve_endpoint(self.endpoints, printer_index)

    def _require_printer_url(self, printer_index: int) -> str:
        printer_url = self.get_printer_url(printer_index)
        if not printer_url:
            raise ConfigurationError("PRINTER_API_URLS not configured")
        return printer_url

    async def send(self, request: PrintJobRequest, enqueue_on_failure: bool = True) -> DispatchResult:
        """
        Send a print job; retryable failures go to the retry queue.

        Validation failures are returned without queueing since replaying an
        unbuildable request cannot succeed.
        """
        result = await self._dispatch(request)

        if result.success:
            events.log_event('dispatch_sent', {
                'order_id': request.order_id,
                'printer_index': request.printer_index,
                'endpoint': result.endpoint,
                'job_id': result.job_id,
                'delivery_number': result.delivery_number
            })
            return result

        events.log_event('dispatch_failed', {
            'order_id': request.order_id,
            'printer_index': request.printer_index,
            'endpoint': result.endpoint,
            'kind': result.failure_kind.value if result.failure_kind else None,
            'error': result.error
        }, level='error')

        if enqueue_on_failure and result.retryable and self.retry_queue is not None:
            self.retry_queue.enqueue(request)
            result.queued_for_retry = True
            result.message = f"{result.message}, added to retry queue"
        return result

    async def replay(self, request: PrintJobRequest) -> DispatchResult:
        """Dispatch without touching the retry queue (the queue decides)"""
        return await self._dispatch(request)

    async def _dispatch(self, request: PrintJobRequest) -> DispatchResult:
        try:
            printer_url = self._require_printer_url(request.printer_index)
        except ConfigurationError as e:
            logger.error("No printer API URL available")
            return DispatchResult(
                success=False,
                message="No printer API available",
                error=str(e),
                failure_kind=FailureKind.CONFIGURATION,
            )

        try:
            payload = build_payload(request)
        except PayloadValidationError as e:
            logger.error(f"❌ Invalid print request for order {request.order_id}: {e}")
            return DispatchResult(
                success=False,
                message="Invalid print request",
                error=str(e),
                failure_kind=FailureKind.VALIDATION,
                endpoint=printer_url,
            )

        try:
            logger.info(f"🖨️ Sending print job to printer API: {printer_url}")
            async with self._session() as client:
                response = await client.post(
                    f"{printer_url}{PRINT_PATH}",
                    json=payload,
                    headers=self._headers(),
                    timeout=self.config.timeout_seconds,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_message = describe_http_error(e.response)
            logger.error(f"❌ Error sending print job to {printer_url}: {error_message}")
            return DispatchResult(
                success=False,
                message="Failed to send print job",
                error=error_message,
                failure_kind=FailureKind.TRANSPORT,
                endpoint=printer_url,
            )
        except httpx.HTTPError as e:
            error_message = str(e) or e.__class__.__name__
            logger.error(f"❌ Error sending print job to {printer_url}: {error_message}")
            return DispatchResult(
                success=False,
                message="Failed to send print job",
                error=error_message,
                failure_kind=FailureKind.TRANSPORT,
                endpoint=printer_url,
            )

        body = _json_body(response)
        if not isinstance(body, dict) or body.get("success") is not True:
            error_message = None
            if isinstance(body, dict):
                error_message = body.get("error") or body.get("message")
            error_message = error_message or "Printer API returned unsuccessful response"
            logger.error(f"❌ Printer API returned unsuccessful response: {body}")
            return DispatchResult(
                success=False,
                message="Printer API returned unsuccessful response",
                error=error_message,
                failure_kind=FailureKind.REJECTED,
                endpoint=printer_url,
            )

        job_id = body.get("jobId")
        delivery_number = body.get("deliveryNumber")
        logger.info(f"✅ Print job sent successfully: {job_id}, Delivery: {delivery_number or 'N/A'}")
        return DispatchResult(
            success=True,
            message=body.get("message") or "Print job sent",
            job_id=job_id,
            delivery_number=delivery_number,
            endpoint=printer_url,
        )

    async def check_health(self, printer_index: int) -> Dict[str, Any]:
        """GET {endpoint}/health; diagnostics only, never called before dispatch"""
        printer_url = self.get_printer_url(printer_index)
        if not printer_url:
            return {"available": False, "message": "No printer API URL configured"}

        try:
            async with self._session() as client:
                response = await client.get(
                    f"{printer_url}{HEALTH_PATH}",
                    headers=self._headers(),
                    timeout=self.config.timeout_seconds,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            return {"available": False, "message": describe_http_error(e.response), "endpoint": printer_url}
        except httpx.HTTPError as e:
            return {"available": False, "message": str(e) or "Health check failed", "endpoint": printer_url}

        return {"available": True, "message": "Printer API is healthy", "endpoint": printer_url}

    def get_retry_queue_status(self) -> Dict[str, Any]:
        if self.retry_queue is None:
            return {"total": 0, "draining": False, "jobs": []}
        return self.retry_queue.status()
