import json
import logging
import uuid

from pydantic import ValidationError

from equicheck import llm
from equicheck.errors import (
    AnalysisError,
    AuthError,
    EmptyDocument,
    EmptyResponse,
    MalformedResponse,
    RateLimited,
    ServiceUnavailable,
    UnknownError,
)
from equicheck.models import AnalysisResult, now_ms
from equicheck.prompts import SYSTEM_INSTRUCTION, build_user_content
from equicheck.schema import response_format

log = logging.getLogger(__name__)


def classify_error(exc: Exception) -> AnalysisError:
    """Map a transport/service failure onto the analysis error taxonomy.

    Uses the HTTP status on the client exception when there is one, otherwise
    looks for the status code in the error text.
    """
    message = str(exc) or exc.__class__.__name__
    status = getattr(exc, "status_code", None)

    if status in (401, 403) or "403" in message:
        return AuthError("Access Denied: Invalid API Key or Permissions.")
    if status == 429 or "429" in message:
        return RateLimited(
            "Rate Limit Exceeded: The service is currently busy. Please try again in a moment."
        )
    if (isinstance(status, int) and status >= 500) or "503" in message or "500" in message:
        return ServiceUnavailable("Service Unavailable: The model service is experiencing issues.")
    return UnknownError(message, original=exc)


def _assemble(raw: str | None, buy_name: str, sell_name: str) -> AnalysisResult:
    if not raw or not raw.strip():
        raise EmptyResponse("The AI model returned an empty response. Please try again.")

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        log.error("JSON parse error in model output: %s", e)
        raise MalformedResponse(
            "Failed to parse AI analysis. The model output was not valid JSON.",
            detail=str(e),
        ) from e

    if not isinstance(parsed, dict):
        raise MalformedResponse(
            "Failed to parse AI analysis. The model output was not a JSON object.",
            detail=f"got {type(parsed).__name__}",
        )

    try:
        result = AnalysisResult.model_validate(
            {
                **parsed,
                "id": str(uuid.uuid4()),
                "timestamp": now_ms(),
                "buySideFileName": buy_name,
                "sellSideFileName": sell_name,
            }
        )
    except ValidationError as e:
        log.error("Model output does not match the analysis schema: %s", e)
        raise MalformedResponse(
            "Failed to parse AI analysis. The model output did not match the expected structure.",
            detail=str(e),
        ) from e

    for warning in result.contract_warnings():
        log.warning("Analysis %s: %s", result.id, warning)
    return result


async def analyze(buy_doc: bytes, sell_doc: bytes, buy_name: str, sell_name: str) -> AnalysisResult:
    """Compare a buy-side report with a sell-side memo.

    Sends both PDFs to the model in a single schema-constrained request and
    returns the assembled AnalysisResult. Raises an AnalysisError subclass on
    any failure; nothing is retried.
    """
    if not buy_doc:
        raise EmptyDocument(f"Buy side document '{buy_name}' is empty.")
    if not sell_doc:
        raise EmptyDocument(f"Sell side document '{sell_name}' is empty.")

    content = build_user_content(buy_doc, sell_doc, buy_name, sell_name)
    log.info(
        "Analyzing %s (%d bytes) against %s (%d bytes)",
        buy_name, len(buy_doc), sell_name, len(sell_doc),
    )

    try:
        raw = await llm.structured_chat(SYSTEM_INSTRUCTION, content, response_format())
    except AnalysisError:
        raise
    except Exception as e:
        log.exception("Analysis request failed")
        raise classify_error(e) from e

    return _assemble(raw, buy_name, sell_name)
