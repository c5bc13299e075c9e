"""JSON-RPC message parsing for MCP traffic.

Messages are validated just enough to tell requests, notifications, results and errors apart.
Payment requests are found in two places: JSON-RPC errors (payment-required or url-mode
elicitation codes) and tool results flagged isError whose text carries the payment preamble.
"""

import logging
import re
from typing import Any, Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from social.graze.paymcp.common.errors import (
    ELICITATION_REQUIRED_ERROR_CODE,
    PAYMENT_REQUIRED_ERROR_CODE,
    PAYMENT_REQUIRED_PREAMBLE,
)

logger = logging.getLogger(__name__)

PAYMENT_REQUEST_URL_PATTERN = re.compile(r"(http[^ ]+)/payment-request/([^ ]+)")

RequestId = Union[str, int]


class JSONRPCRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    jsonrpc: str = "2.0"
    id: RequestId
    method: str
    params: Optional[Dict[str, Any]] = None


class JSONRPCNotification(BaseModel):
    model_config = ConfigDict(extra="allow")

    jsonrpc: str = "2.0"
    method: str
    params: Optional[Dict[str, Any]] = None


class JSONRPCResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    jsonrpc: str = "2.0"
    id: RequestId
    result: Dict[str, Any]


class ErrorObject(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None


class JSONRPCError(BaseModel):
    model_config = ConfigDict(extra="allow")

    jsonrpc: str = "2.0"
    id: Optional[RequestId] = None
    error: ErrorObject


JSONRPCMessage = Union[JSONRPCRequest, JSONRPCNotification, JSONRPCResponse, JSONRPCError]


class PaymentRequestRef(NamedTuple):
    url: str
    id: str


def parse_mcp_message(obj: Any) -> JSONRPCMessage:
    if not isinstance(obj, dict) or obj.get("jsonrpc") != "2.0":
        raise ValueError("Not a JSON-RPC 2.0 message")
    if "method" in obj:
        if "id" in obj:
            return JSONRPCRequest.model_validate(obj)
        return JSONRPCNotification.model_validate(obj)
    if "result" in obj:
        return JSONRPCResponse.model_validate(obj)
    if "error" in obj:
        return JSONRPCError.model_validate(obj)
    raise ValueError("JSON-RPC message has no method, result or error")


def parse_mcp_messages(payload: Any) -> List[JSONRPCMessage]:
    """Parse a single message or a batch. Invalid input yields an empty list."""
    items = payload if isinstance(payload, list) else [payload]
    try:
        return [parse_mcp_message(item) for item in items]
    except (ValidationError, ValueError) as e:
        logger.warning("Invalid JSON-RPC message format")
        logger.debug(str(e))
        return []


def _payment_request_from_string(text: Optional[str]) -> Optional[PaymentRequestRef]:
    if not text or not isinstance(text, str):
        return None
    match = PAYMENT_REQUEST_URL_PATTERN.search(text)
    if match is None:
        return None
    return PaymentRequestRef(url=match.group(0), id=match.group(2))


def parse_payment_requests(message: JSONRPCMessage) -> List[PaymentRequestRef]:
    found: List[PaymentRequestRef] = []

    if isinstance(message, JSONRPCError):
        error = message.error
        data = error.data if isinstance(error.data, dict) else {}

        if error.code == PAYMENT_REQUIRED_ERROR_CODE:
            pr = _payment_request_from_string(data.get("paymentRequestUrl"))
            if pr is None:
                pr = _payment_request_from_string(error.message)
            if pr is not None:
                found.append(pr)

        if error.code == ELICITATION_REQUIRED_ERROR_CODE:
            for elicitation in data.get("elicitations") or []:
                if isinstance(elicitation, dict) and elicitation.get("mode") == "url":
                    pr = _payment_request_from_string(elicitation.get("url"))
                    if pr is not None:
                        found.append(pr)

    if isinstance(message, JSONRPCResponse) and message.result.get("isError"):
        for content in message.result.get("content") or []:
            if not isinstance(content, dict) or content.get("type") != "text":
                continue
            text = content.get("text") or ""
            if PAYMENT_REQUIRED_PREAMBLE in text and str(PAYMENT_REQUIRED_ERROR_CODE) in text:
                pr = _payment_request_from_string(text)
                if pr is not None:
                    found.append(pr)

    return found
