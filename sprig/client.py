from __future__ import annotations

import logging
import time
from typing import Callable, Iterator

import requests

from .adapters import ProviderAdapter
from .config import Settings
from .errors import ProviderConnectionError, ProviderHTTPError, SprigError
from .models import GPTRequest

log = logging.getLogger(__name__)

HTTP_ERROR_HINTS = {
    400: "Invalid model or prompt size too large. Try specifying fewer files.",
    401: "The API key was rejected.",
    403: "Inactive subscription or usage limit reached.",
    413: "Prompt size too large. Try specifying fewer files.",
    429: "Rate limit exceeded.",
}


def describe_http_error(status: int) -> str:
    if status in HTTP_ERROR_HINTS:
        return HTTP_ERROR_HINTS[status]
    if status >= 500:
        return "The provider reported an internal server error."
    return "Unexpected response from the provider."


def error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip()[:500]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
        if isinstance(err, str):
            return err
    return str(body)[:500]


class GPTClient:
    def __init__(
        self,
        settings: Settings,
        adapter: ProviderAdapter,
        http: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.adapter = adapter
        self.http = http or requests.Session()
        self.sleep = sleep

    def build_request(self, request: GPTRequest) -> GPTRequest:
        if request.temperature is None:
            request.temperature = self.settings.temperature
        if request.max_tokens is None:
            request.max_tokens = self.settings.max_tokens
        return request

    def _post(self, request: GPTRequest, stream: bool) -> requests.Response:
        request = self.build_request(request)
        url = self.adapter.get_endpoint(stream)
        headers = self.adapter.get_headers(self.settings.api_key)
        payload = self.adapter.get_payload(request, stream)

        attempts = max(self.settings.max_rate_limit_retries, 1)
        delay = self.settings.backoff_seconds
        for attempt in range(1, attempts + 1):
            try:
                response = self.http.post(
                    url,
                    headers=headers,
                    json=payload,
                    stream=stream,
                    timeout=self.settings.timeout_seconds,
                )
            except requests.RequestException as e:
                raise ProviderConnectionError(f"Error communicating with {url}: {e}") from e

            if response.status_code == 429 and attempt < attempts:
                response.close()
                log.warning("Rate limited. Retrying in %.1fs (attempt %d/%d)", delay, attempt, attempts)
                self.sleep(delay)
                delay *= 2
                continue

            if not response.ok:
                detail = error_detail(response)
                response.close()
                raise ProviderHTTPError(response.status_code, detail)
            return response

        raise ProviderHTTPError(429, "rate limit retries exhausted")

    def stream_text(self, request: GPTRequest) -> Iterator[str]:
        response = self._post(request, stream=True)
        if "charset=" not in response.headers.get("content-type", "").lower():
            # requests falls back to ISO-8859-1 for text/* without a charset
            response.encoding = "utf-8"
        try:
            for chunk in response.iter_content(chunk_size=None, decode_unicode=True):
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            raise ProviderConnectionError(f"Stream interrupted: {e}") from e
        finally:
            response.close()

    def generate_text(self, request: GPTRequest) -> str:
        response = self._post(request, stream=False)
        try:
            body = response.json()
        except ValueError as e:
            raise SprigError(f"Provider returned invalid JSON: {e}") from e
        try:
            return self.adapter.extract_response(body)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise SprigError(f"Unexpected response structure: {e}") from e
