"""
User facing error messages for the feed client.

HTTP status codes are mapped to short localized messages. Error bodies of
the API have the form {"error": ..., "details": ...}; when one is present its
text is preferred over the generic status message.
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"

HTTP_ERROR_MESSAGES: dict[str, dict[int, str]] = {
    "en": {
        400: "The request was invalid.",
        401: "Please sign in to continue.",
        403: "You do not have permission to do that.",
        404: "The requested resource was not found.",
        409: "This request was already processed.",
        413: "The file is too large.",
        429: "Too many requests. Please try again shortly.",
        500: "A server error occurred. Please try again shortly.",
        503: "The service is temporarily unavailable.",
    },
    "ko": {
        400: "잘못된 요청입니다.",
        401: "로그인이 필요합니다.",
        403: "권한이 없습니다.",
        404: "요청한 리소스를 찾을 수 없습니다.",
        409: "이미 처리된 요청입니다.",
        413: "파일 크기가 너무 큽니다.",
        429: "요청이 너무 많습니다. 잠시 후 다시 시도해주세요.",
        500: "서버 오류가 발생했습니다. 잠시 후 다시 시도해주세요.",
        503: "서비스를 일시적으로 사용할 수 없습니다.",
    },
}

GENERIC_ERROR_MESSAGES = {
    "en": "Something went wrong. Please try again shortly.",
    "ko": "오류가 발생했습니다. 잠시 후 다시 시도해주세요.",
}

NETWORK_ERROR_MESSAGES = {
    "en": "Please check your network connection.",
    "ko": "네트워크 연결을 확인해주세요.",
}

UNKNOWN_ERROR_MESSAGES = {
    "en": "An unknown error occurred.",
    "ko": "알 수 없는 오류가 발생했습니다.",
}


def _pick(messages: dict[str, str], locale: str) -> str:
    return messages.get(locale, messages[DEFAULT_LOCALE])


def get_http_error_message(status_code: int, locale: str = DEFAULT_LOCALE) -> str:
    messages = HTTP_ERROR_MESSAGES.get(locale, HTTP_ERROR_MESSAGES[DEFAULT_LOCALE])
    return messages.get(status_code, _pick(GENERIC_ERROR_MESSAGES, locale))


def get_network_error_message(locale: str = DEFAULT_LOCALE) -> str:
    return _pick(NETWORK_ERROR_MESSAGES, locale)


def is_network_error(exc: BaseException) -> bool:
    """True for connection failures and timeouts, which never produced a response"""
    return isinstance(exc, httpx.TransportError)


def extract_error_message(response: httpx.Response, locale: str = DEFAULT_LOCALE) -> str:
    """Best message for an error response: "error: details", error, message, details, then the status text"""
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type or not response.text.strip():
        return get_http_error_message(response.status_code, locale)

    try:
        data = response.json()
    except ValueError:
        logger.warning("Failed to parse error response with status %s", response.status_code)
        return get_http_error_message(response.status_code, locale)

    if not isinstance(data, dict):
        return get_http_error_message(response.status_code, locale)

    error: Optional[str] = data.get("error")
    details: Optional[str] = data.get("details")
    if error and details:
        return f"{error}: {details}"
    if error:
        return error
    if data.get("message"):
        return data["message"]
    if details:
        return details
    return get_http_error_message(response.status_code, locale)


def get_user_friendly_error_message(exc: BaseException, locale: str = DEFAULT_LOCALE) -> str:
    from photofeed.client.api_client import ApiRequestError, NetworkError

    if isinstance(exc, NetworkError) or is_network_error(exc):
        return get_network_error_message(locale)
    if isinstance(exc, ApiRequestError):
        return exc.message
    if isinstance(exc, Exception):
        return _pick(GENERIC_ERROR_MESSAGES, locale)
    return _pick(UNKNOWN_ERROR_MESSAGES, locale)
