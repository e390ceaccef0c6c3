"""FastAPI application for financial document analysis.

Endpoints:
- Health and readiness checks
- Document analysis (extraction -> validation -> confidence scoring)
- Stand-alone validation of an already extracted field set
- Daily budget usage
- Prometheus metrics

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from typing import Any

from fastapi import FastAPI, File, HTTPException, Request, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from findoc.api import metrics
from findoc.extraction.schema import ExtractedFieldSet
from findoc.extraction.service import ExtractionGateway
from findoc.governor.service import LedgerSnapshot, get_cost_governor
from findoc.llm.factory import create_provider
from findoc.pipeline.orchestrator import PipelineOrchestrator
from findoc.pipeline.schema import PipelineResult
from findoc.scoring.service import ScoringGateway
from findoc.shared.config import get_settings
from findoc.shared.errors import ErrorKind
from findoc.validation.engine import get_summary, validate_document
from findoc.validation.schema import ValidationSummary

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Financial Document Pipeline",
    description="Extract, validate and confidence-score financial documents",
    version=settings.service_version,
)

governor = get_cost_governor(settings)
orchestrator = PipelineOrchestrator(
    governor=governor,
    extraction_gateway=ExtractionGateway(
        create_provider(settings, "extraction"), settings
    ),
    scoring_gateway=ScoringGateway(create_provider(settings, "scoring"), settings),
    settings=settings,
)

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.RATE_LIMIT: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.AUTHENTICATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.MALFORMED_RESPONSE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.SERVER: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
}


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    extraction_provider: str
    scoring_provider: str


class ValidationResponse(BaseModel):
    """Stand-alone validation response (canonical and alias keys)."""

    validation: dict[str, dict[str, Any]]
    summary: ValidationSummary


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check: both model providers must have credentials configured.

    Returns:
        Readiness status
    """
    extraction_provider = orchestrator.extraction_gateway.provider
    scoring_provider = orchestrator.scoring_gateway.provider
    return ReadinessResponse(
        ready=extraction_provider.is_available() and scoring_provider.is_available(),
        extraction_provider=extraction_provider.provider_name,
        scoring_provider=scoring_provider.provider_name,
    )


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.get(
    "/api/v1/usage",
    response_model=LedgerSnapshot,
    response_model_by_alias=True,
    tags=["Usage"],
)
def get_usage() -> LedgerSnapshot:
    """Current day's model spend against the daily limit.

    Returns:
        Ledger snapshot (date, dailyTotal, dailyLimit, remainingBudget)
    """
    return governor.snapshot()


@app.post(
    "/api/v1/documents/validate",
    response_model=ValidationResponse,
    response_model_by_alias=True,
    tags=["Documents"],
)
def validate_fields(fields: ExtractedFieldSet) -> ValidationResponse:
    """Run the deterministic validation rules on an extracted field set.

    No model is called and no budget is consumed. Legacy field names
    (invoice_number, invoice_date, amount_due, due_date) are accepted.

    Args:
        fields: Extracted document fields

    Returns:
        Validation results under canonical and alias names, plus a summary
    """
    results = validate_document(fields)
    return ValidationResponse(validation=results.to_dict(), summary=get_summary(results))


@app.post("/api/v1/documents/analyze", tags=["Documents"])
async def analyze_document(
    file: UploadFile = File(..., description="Document image (JPEG, PNG, GIF, WebP)"),  # noqa: B008
) -> JSONResponse:
    """Extract, validate and confidence-score one financial document.

    ## Usage Example

    ```bash
    curl -X POST "http://localhost:8000/api/v1/documents/analyze" \\
      -F "file=@receipt.jpg"
    ```

    ## Error Handling

    - 400 if the file is missing, empty, not an image or unreadable
    - 413 if the file exceeds the configured size limit
    - 429 if the daily cost limit is reached or the provider rate-limits us
    - 500 if provider authentication fails
    - 502 if the provider fails or returns an unparsable reply
    - 200 with `scoringStatus: "failed"` or `"skipped"` when only scoring
      could not run (extraction and validation results are kept)

    Args:
        file: Image file to process

    Returns:
        PipelineResult as JSON

    Raises:
        HTTPException: If the upload is invalid
    """
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No filename provided")

    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid file type: {file.content_type}. Only images are supported.",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_upload_bytes} bytes",
        )

    metrics.document_upload_size_bytes.observe(len(content))

    # Blocking upstream calls run in the threadpool so runs can overlap
    result: PipelineResult = await run_in_threadpool(
        orchestrator.run, content, file.content_type
    )

    status_code = status.HTTP_200_OK
    if not result.success and result.error_type is not None:
        status_code = ERROR_STATUS.get(result.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
