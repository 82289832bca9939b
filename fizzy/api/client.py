from __future__ import annotations

import json
import logging
import random
import time
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Literal, Mapping
from urllib.parse import urlsplit

import httpx

from fizzy.api.cache import CacheStats, EtagCache
from fizzy.api.errors import ApiError, decode_error, invalid_url_error
from fizzy.api.multipart import Upload, build_upload
from fizzy.api.pagination import (
    PageIterator,
    PaginatedResponse,
    PaginationInfo,
    iter_items,
    parse_link_header,
)
from fizzy.api.retry import Fail, Retry, Succeed, classify
from fizzy.config import ClientConfig
from fizzy.obs.logging import log_event, mask_url

ACCOUNT_INDEPENDENT_PREFIXES = ("my/",)

HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]


@dataclass(frozen=True)
class AuthCredential:
    kind: Literal["bearer", "session"]
    token: str

    @classmethod
    def bearer(cls, token: str) -> AuthCredential:
        return cls(kind="bearer", token=token)

    @classmethod
    def session(cls, token: str) -> AuthCredential:
        return cls(kind="session", token=token)

    def apply(self, headers: dict[str, str]) -> None:
        if self.kind == "bearer":
            headers["Authorization"] = f"Bearer {self.token}"
        else:
            headers["Cookie"] = f"session_token={self.token}"


@dataclass(frozen=True)
class PageOptions:
    page: int | None = None
    per_page: int | None = None
    all: bool = False


@dataclass(frozen=True)
class ApiResponse:
    data: Any
    headers: httpx.Headers
    status: int
    etag: str | None = None


@dataclass
class ClientMetrics:
    http_requests_total: dict[tuple[str, str], int] = field(default_factory=lambda: defaultdict(int))
    http_retries_total: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    http_latency_ms: list[float] = field(default_factory=list)

    def record_request(self, method: str, status: str, latency_ms: float) -> None:
        self.http_requests_total[(method, status)] += 1
        self.http_latency_ms.append(latency_ms)

    def record_retry(self, reason: str) -> None:
        self.http_retries_total[reason] += 1

    @property
    def requests(self) -> int:
        return sum(self.http_requests_total.values())


class FizzyClient:
    def __init__(
        self,
        config: ClientConfig,
        auth: AuthCredential,
        *,
        logger: logging.Logger | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
        cache: EtagCache | None = None,
    ) -> None:
        self._config = config
        self._auth = auth
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._rng = rng
        self._cache = cache if cache is not None else EtagCache()
        self._metrics = ClientMetrics()
        self._client = httpx.Client(timeout=httpx.Timeout(config.timeout_s), transport=transport)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def account_slug(self) -> str | None:
        return self._config.account_slug

    @property
    def metrics(self) -> ClientMetrics:
        return self._metrics

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> FizzyClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # URL resolution

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path

        base_url = self._config.base_url
        slug = self._config.account_slug
        clean = path.lstrip("/")
        if slug and clean.startswith(f"{slug}/"):
            return f"{base_url}/{clean}"
        # Unscoped clients (login) only reach account-independent paths.
        if clean.startswith(ACCOUNT_INDEPENDENT_PREFIXES) or not slug:
            return f"{base_url}/{clean}"
        return f"{base_url}/{slug}/{clean}"

    def _resolve_url(
        self,
        path: str,
        method: str,
        params: Mapping[str, Any] | None,
        pagination: PageOptions | None,
    ) -> str:
        url = self.build_url(path)
        query: dict[str, Any] = dict(params or {})
        if method == "GET" and pagination is not None and not pagination.all:
            if pagination.page:
                query["page"] = str(pagination.page)
            if pagination.per_page:
                query["per_page"] = str(pagination.per_page)
        try:
            # Server-supplied Link/Location URLs end up here too.
            urlsplit(url)
            parsed = httpx.URL(url)
        except (ValueError, httpx.InvalidURL) as exc:
            raise invalid_url_error(url, exc) from exc
        if not query:
            return url
        return str(parsed.copy_merge_params(query))

    # Request pipeline

    def request(
        self,
        path: str,
        *,
        method: HttpMethod = "GET",
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        etag: str | None = None,
        multipart: Upload | None = None,
        pagination: PageOptions | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        method = method.upper()  # type: ignore[assignment]
        url = self._resolve_url(path, method, params, pagination)

        cached = self._cache.get(url) if method == "GET" else None
        if_none_match = etag or (cached.etag if cached else None)

        request_headers = {
            "Accept": "application/json",
            "User-Agent": self._config.user_agent,
            **(headers or {}),
        }
        self._auth.apply(request_headers)
        content: bytes | None = None
        if body is not None and multipart is None:
            request_headers["Content-Type"] = "application/json; charset=utf-8"
            content = json.dumps(body).encode("utf-8")
        if if_none_match:
            request_headers["If-None-Match"] = if_none_match

        response = self._send(method, url, request_headers, content, multipart)

        if response.status_code == 304:
            if cached is not None:
                log_event(self._logger, logging.DEBUG, "cache_hit", f"{method} {mask_url(url)} not modified")
                return ApiResponse(data=cached.data, headers=response.headers, status=304, etag=cached.etag)
            return ApiResponse(data=None, headers=response.headers, status=304, etag=if_none_match)

        data = self._decode(response, url)

        response_etag = response.headers.get("ETag")
        if method == "GET" and response_etag:
            self._cache.set(url, response_etag, data)

        return ApiResponse(data=data, headers=response.headers, status=response.status_code, etag=response_etag)

    def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        content: bytes | None,
        multipart: Upload | None,
    ) -> httpx.Response:
        policy = self._config.retry
        safe_url = mask_url(url)

        for attempt in range(policy.max_attempts):
            start = time.monotonic()
            outcome: httpx.Response | httpx.RequestError
            try:
                if multipart is not None:
                    outcome = self._client.request(
                        method, url, headers=headers, data=multipart.data, files=multipart.files
                    )
                else:
                    outcome = self._client.request(method, url, headers=headers, content=content)
            except httpx.RequestError as exc:
                outcome = exc
            except httpx.InvalidURL as exc:
                error = invalid_url_error(url, exc)
                self._log_fail(method, safe_url, error)
                raise error from exc

            latency_ms = (time.monotonic() - start) * 1000
            status_label = (
                str(outcome.status_code) if isinstance(outcome, httpx.Response) else type(outcome).__name__
            )
            self._metrics.record_request(method, status_label, latency_ms)
            log_event(
                self._logger,
                logging.INFO,
                "http_request",
                f"{method} {safe_url}",
                method=method,
                url=safe_url,
                status=status_label,
                attempt=attempt + 1,
                latency_ms=round(latency_ms, 2),
            )

            decision = classify(outcome, attempt, policy, self._rng)
            if isinstance(decision, Succeed):
                return decision.response
            if isinstance(decision, Retry):
                self._metrics.record_retry(decision.reason)
                log_event(
                    self._logger,
                    logging.WARNING,
                    "http_retry",
                    f"Retrying {method} {safe_url} in {decision.delay_s:.1f}s",
                    reason=decision.reason,
                    attempt=attempt + 1,
                    max_retries=policy.max_retries,
                    delay_s=round(decision.delay_s, 3),
                )
                self._sleep(decision.delay_s)
                continue
            if isinstance(decision, Fail):
                self._log_fail(method, safe_url, decision.error)
                if isinstance(outcome, httpx.RequestError):
                    raise decision.error from outcome
                raise decision.error

        raise ApiError("Request failed after retries")

    def _decode(self, response: httpx.Response, url: str) -> Any:
        """
        Decode a successful body, or return None when there is none.

        A 201 carrying ``Location`` is resolved with a follow-up GET whenever
        the body is empty, whether that is signalled by ``Content-Length: 0``
        or by a blank body without the header. Servers that omit the header
        on an empty create response would otherwise yield None.
        """
        status = response.status_code
        text = response.text
        empty = status == 204 or response.headers.get("Content-Length") == "0" or not text.strip()
        if empty:
            location = response.headers.get("Location")
            if status == 201 and location:
                log_event(
                    self._logger,
                    logging.DEBUG,
                    "follow_location",
                    f"Following Location after create: {mask_url(location)}",
                    created_from=mask_url(url),
                )
                return self.get(location)
            return None
        try:
            return json.loads(text)
        except ValueError as exc:
            error = decode_error(status, text, exc)
            self._log_fail("decode", mask_url(url), error)
            raise error from exc

    def _log_fail(self, method: str, url: str, error: ApiError) -> None:
        log_event(
            self._logger,
            logging.ERROR,
            "http_fail",
            f"Request failed for {method} {url}",
            status=error.status,
            error_type=type(error).__name__,
        )

    # Convenience wrappers

    def get(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        pagination: PageOptions | None = None,
        headers: Mapping[str, str] | None = None,
        etag: str | None = None,
    ) -> Any:
        if pagination is not None and pagination.all:
            return self.get_all(path, params=params)
        return self.request(
            path, method="GET", params=params, pagination=pagination, headers=headers, etag=etag
        ).data

    def get_with_response(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        pagination: PageOptions | None = None,
        etag: str | None = None,
    ) -> ApiResponse:
        return self.request(path, method="GET", params=params, pagination=pagination, etag=etag)

    def post(self, path: str, body: Any = None, *, headers: Mapping[str, str] | None = None) -> Any:
        return self.request(path, method="POST", body=body, headers=headers).data

    def put(self, path: str, body: Any = None, *, headers: Mapping[str, str] | None = None) -> Any:
        return self.request(path, method="PUT", body=body, headers=headers).data

    def delete(self, path: str, *, headers: Mapping[str, str] | None = None) -> Any:
        return self.request(path, method="DELETE", headers=headers).data

    # Pagination

    def get_paginated(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        pagination: PageOptions | None = None,
    ) -> PaginatedResponse[Any]:
        response = self.request(path, method="GET", params=params, pagination=pagination)
        links = parse_link_header(response.headers.get("Link"))
        return PaginatedResponse(data=response.data, pagination=PaginationInfo(links=links))

    def get_all_pages(self, path: str, *, params: Mapping[str, Any] | None = None) -> Iterator[Any]:
        """Lazily yield every item across all pages, following ``next`` links."""
        first_url = self._resolve_url(path, "GET", params, None)
        yield from iter_items(PageIterator(first_url, self.get_paginated))

    def get_all(
        self,
        path: str,
        limit: int | None = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> list[Any]:
        items: list[Any] = []
        for item in self.get_all_pages(path, params=params):
            items.append(item)
            if limit and len(items) >= limit:
                break
        return items

    # Uploads

    def upload_file(
        self,
        path: str,
        file_path: str | Path,
        field_name: str,
        additional_fields: Mapping[str, Any] | None = None,
        method: Literal["POST", "PUT"] = "POST",
    ) -> Any:
        upload = build_upload(file_path, field_name, additional_fields)
        return self.request(path, method=method, multipart=upload).data

    # Cache

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()
