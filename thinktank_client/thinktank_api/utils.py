# thinktank_client/thinktank_api/utils.py
#
#
# Imports
import json
from typing import Any, Dict, Optional
#
# 3rd-party Libraries
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from .schemas import StreamChunk
#
#######################################################################################################################
#
# Functions:

SSE_DATA_PREFIX = "data: "
SSE_DONE_MARKER = "[DONE]"


def decode_error_body(raw_text: str) -> Optional[Dict[str, Any]]:
    """Best-effort JSON decode of an error response body."""
    if not raw_text:
        return None
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def extract_error_detail(response_data: Optional[Dict[str, Any]], fallback: str) -> str:
    """
    Pulls a human readable message out of an error body.

    The Lambda handlers answer `{"error": ..., "message": ..., "statusCode": ...}`;
    FastAPI-style `{"detail": ...}` bodies are understood too.
    """
    if not isinstance(response_data, dict):
        return fallback
    message = response_data.get("message")
    if isinstance(message, str) and message:
        return message
    detail = response_data.get("detail")
    if isinstance(detail, list) and detail and isinstance(detail[0], dict):
        # Pydantic validation error format
        loc = ".".join(map(str, detail[0].get("loc", [])))
        return f"Validation Error: {detail[0].get('msg', '')} for field '{loc}'"
    if isinstance(detail, str) and detail:
        return detail
    return fallback


def parse_sse_line(line: str) -> Optional[StreamChunk]:
    """
    Parses one Server-Sent-Events line.

    Returns None for lines to skip (comments, keep-alives, malformed chunks) and for the
    `[DONE]` terminator; callers check `is_sse_done` first to stop reading.
    """
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX):].strip()
    if not payload or payload == SSE_DONE_MARKER:
        return None
    try:
        return StreamChunk.model_validate_json(payload)
    except ValidationError:
        logger.warning(f"Skipping malformed stream chunk: {payload[:200]}")
        return None


def is_sse_done(line: str) -> bool:
    return line.startswith(SSE_DATA_PREFIX) and line[len(SSE_DATA_PREFIX):].strip() == SSE_DONE_MARKER

#
# End of thinktank_client/thinktank_api/utils.py
########################################################################################################################
