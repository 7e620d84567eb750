"""
Request Gateway.

The single egress point for backend calls.  Every screen, service and
CLI command talks to the clinic REST API through one ``RequestGateway``
instance, which:

- attaches ``Authorization: Bearer <token>`` from durable storage unless
  the call is marked ``public``;
- tags each call with a request id and keeps a cancellation handle for
  it until the call settles;
- serves GET calls from a time-boxed cache when asked to;
- persists refreshed credentials returned by the backend;
- converts every failure into an ``ApiError`` and, on a 401, notifies
  the registered unauthorized callback before raising.

All state (cache, in-flight registry, callback slot) lives on the
instance; construct a fresh gateway per test.

Usage::

    async with RequestGateway(config, storage, logger) as api:
        patients = await api.get("patients", config={"cache": True})
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar, Union

import httpx

from medclinic.config import AppConfig
from medclinic.errors import ApiError
from medclinic.logger import StructuredLogger
from medclinic.models.auth_models import StorageKey
from medclinic.models.enums import HttpMethod
from medclinic.models.service_models import CacheEntry, RequestConfig, ServiceResult
from medclinic.storage import KeyValueStorage

T = TypeVar("T")

ConfigArg = Union[RequestConfig, Mapping[str, Any], None]
UnauthorizedCallback = Callable[[], None]

REFRESH_TOKEN_HEADER: str = "x-new-token"

_DEFAULT_HEADERS: dict[str, str] = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "X-Requested-With": "XMLHttpRequest",
}


class RequestGateway:
    """Configured HTTP client shared by every caller.

    Parameters
    ----------
    config:
        Application configuration (base URL, default timeout and TTL).
    storage:
        Durable storage holding the bearer token.
    logger:
        Structured logger; one line per call.
    transport:
        Optional ``httpx`` transport, e.g. ``httpx.MockTransport`` in
        tests.
    clock:
        Monotonic time source used for cache freshness.
    """

    def __init__(
        self,
        config: AppConfig,
        storage: KeyValueStorage,
        logger: StructuredLogger,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config: AppConfig = config
        self._storage: KeyValueStorage = storage
        self._logger: StructuredLogger = logger
        self._clock: Callable[[], float] = clock

        self._client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config.API_BASE_URL,
            headers=_DEFAULT_HEADERS,
            timeout=config.REQUEST_TIMEOUT_S,
            follow_redirects=False,
            transport=transport,
        )

        self._cache: dict[tuple[str, str], CacheEntry] = {}
        self._active: dict[str, asyncio.Future[httpx.Response]] = {}
        self._cancelled: set[asyncio.Future[httpx.Response]] = set()
        self._on_unauthorized: Optional[UnauthorizedCallback] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "RequestGateway":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel anything still in flight and close the HTTP client."""
        self.cancel_all()
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Verb helpers (the interface exposed to screens)
    # ------------------------------------------------------------------

    async def get(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        config: ConfigArg = None,
    ) -> Any:
        return await self.request(HttpMethod.GET, path, params=params, config=config)

    async def post(self, path: str, body: Any = None, config: ConfigArg = None) -> Any:
        return await self.request(HttpMethod.POST, path, body=body, config=config)

    async def put(self, path: str, body: Any = None, config: ConfigArg = None) -> Any:
        return await self.request(HttpMethod.PUT, path, body=body, config=config)

    async def delete(
        self,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        config: ConfigArg = None,
    ) -> Any:
        return await self.request(HttpMethod.DELETE, path, params=params, config=config)

    # ------------------------------------------------------------------
    # Core pipeline
    # ------------------------------------------------------------------

    async def request(
        self,
        method: Union[HttpMethod, str],
        path: str,
        *,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        config: ConfigArg = None,
    ) -> Any:
        """Execute one call and return the decoded response payload.

        Raises
        ------
        ApiError
            For every failure, including cancellation and timeouts.
        """
        cfg = self._merge_config(config)
        verb = HttpMethod(str(method).upper())
        request_id: str = cfg.request_id or str(uuid.uuid4())

        headers: dict[str, str] = {**cfg.headers, "X-Request-ID": request_id}
        if not cfg.public:
            token = self._storage.get_item(StorageKey.TOKEN)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        cache_key: Optional[tuple[str, str]] = None
        if verb == HttpMethod.GET and cfg.cache:
            cache_key = self._cache_key(path, params)
            entry = self._cache.get(cache_key)
            ttl: float = cfg.cache_ttl or self._config.CACHE_TTL_S
            if entry is not None and entry.is_fresh(self._clock(), ttl):
                self._logger.debug(
                    "%s %s served from cache",
                    verb.value,
                    path,
                    extra={"request_id": request_id},
                )
                return entry.payload

        timeout: float = cfg.timeout or self._config.REQUEST_TIMEOUT_S
        task: asyncio.Future[httpx.Response] = asyncio.ensure_future(
            self._send(verb, path, body, params, headers, timeout)
        )
        if request_id in self._active:
            self._logger.warning(
                "Request id %s reused while still in flight; the earlier "
                "call can no longer be cancelled by id.",
                request_id,
            )
        self._active[request_id] = task

        started = time.perf_counter()
        try:
            response = await task
        except asyncio.CancelledError:
            if task not in self._cancelled:
                # The caller's own task was cancelled; let it propagate.
                raise
            error = ApiError.cancelled(request_id=request_id, url=path)
            self._logger.warning(
                "%s %s cancelled",
                verb.value,
                path,
                extra={"request_id": request_id},
            )
            raise error from None
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            error = ApiError.timeout(request_id=request_id, url=path)
            self._log_failure(verb, path, error, cfg, started)
            raise error from exc
        except httpx.TransportError as exc:
            error = ApiError.network(request_id=request_id, url=path)
            self._log_failure(verb, path, error, cfg, started)
            raise error from exc
        except httpx.HTTPError as exc:
            error = ApiError.unknown(request_id=request_id, url=path)
            self._log_failure(verb, path, error, cfg, started)
            raise error from exc
        finally:
            if self._active.get(request_id) is task:
                del self._active[request_id]
            self._cancelled.discard(task)

        payload = self._decode(response)

        if response.status_code >= 400:
            error = ApiError.from_status(
                response.status_code,
                payload,
                request_id=request_id,
                url=path,
            )
            self._log_failure(verb, path, error, cfg, started)
            if error.is_unauthorized:
                self._notify_unauthorized()
            raise error

        self._logger.info(
            "%s %s -> %d",
            verb.value,
            path,
            response.status_code,
            extra={
                "request_id": request_id,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )

        if cache_key is not None:
            self._cache[cache_key] = CacheEntry(payload=payload, stored_at=self._clock())

        self._store_refreshed_token(response, payload)
        return payload

    async def _send(
        self,
        verb: HttpMethod,
        path: str,
        body: Any,
        params: Optional[Mapping[str, Any]],
        headers: dict[str, str],
        timeout: float,
    ) -> httpx.Response:
        return await asyncio.wait_for(
            self._client.request(
                verb.value,
                path,
                json=body,
                params=dict(params) if params else None,
                headers=headers,
                timeout=timeout,
            ),
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_request(self, request_id: str) -> bool:
        """Cancel the in-flight call registered under *request_id*.

        Returns ``True`` when a call was cancelled.  The cancelled call
        raises ``ApiError`` with ``is_cancelled``; other calls are not
        affected.
        """
        task = self._active.pop(request_id, None)
        if task is None or task.done():
            return False
        self._cancelled.add(task)
        task.cancel()
        self._logger.info("Cancellation requested", extra={"request_id": request_id})
        return True

    def cancel_all(self) -> int:
        """Cancel every in-flight call; return how many were cancelled."""
        return sum(1 for request_id in list(self._active) if self.cancel_request(request_id))

    @property
    def active_request_ids(self) -> list[str]:
        return list(self._active)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def clear_cache(self, url: Optional[str] = None) -> None:
        """Drop cached reads for *url* (any query params), or everything."""
        if url is None:
            self._cache.clear()
            self._logger.debug("Request cache cleared.")
            return
        normalised = self._normalise_path(url)
        for key in [key for key in self._cache if key[0] == normalised]:
            del self._cache[key]

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    @classmethod
    def _cache_key(
        cls,
        path: str,
        params: Optional[Mapping[str, Any]],
    ) -> tuple[str, str]:
        serialised = json.dumps(dict(params or {}), sort_keys=True, default=str)
        return cls._normalise_path(path), serialised

    @staticmethod
    def _normalise_path(path: str) -> str:
        return path.strip().lstrip("/")

    # ------------------------------------------------------------------
    # Unauthorized callback slot
    # ------------------------------------------------------------------

    def set_on_unauthorized_callback(self, callback: Optional[UnauthorizedCallback]) -> None:
        """Register the single unauthorized subscriber (``None`` clears it).

        Registering replaces any previous callback.
        """
        self._on_unauthorized = callback

    def _notify_unauthorized(self) -> None:
        callback = self._on_unauthorized
        if callback is None:
            return
        self._logger.warning("401 received; notifying session owner.")
        try:
            callback()
        except Exception:
            self._logger.exception("Unauthorized callback raised.")

    # ------------------------------------------------------------------
    # Non-raising wrapper
    # ------------------------------------------------------------------

    async def safe_request(
        self,
        request_fn: Callable[[], Awaitable[T]],
        error_message: Optional[str] = None,
        show_error: bool = True,
    ) -> ServiceResult:
        """Await *request_fn* and wrap the outcome in a ``ServiceResult``.

        Usage::

            result = await api.safe_request(lambda: api.get("clinics"))
            if not result.success:
                show(result.error)
        """
        try:
            data = await request_fn()
        except ApiError as exc:
            if show_error:
                self._logger.error(
                    "Request failed: %s",
                    error_message or exc.message,
                    extra={"request_id": exc.request_id, "kind": exc.kind.value},
                )
            return exc.to_result(error_message)
        return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _merge_config(config: ConfigArg) -> RequestConfig:
        if config is None:
            return RequestConfig()
        if isinstance(config, RequestConfig):
            return config
        return RequestConfig.model_validate(dict(config))

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _store_refreshed_token(self, response: httpx.Response, payload: Any) -> None:
        new_token = response.headers.get(REFRESH_TOKEN_HEADER)
        if not new_token and isinstance(payload, dict):
            new_token = payload.get("token")
        if isinstance(new_token, str) and new_token:
            self._storage.set_item(StorageKey.TOKEN, new_token)
            self._logger.debug("Stored refreshed bearer token.")

    def _log_failure(
        self,
        verb: HttpMethod,
        path: str,
        error: ApiError,
        cfg: RequestConfig,
        started: float,
    ) -> None:
        log = self._logger.error if cfg.show_error else self._logger.debug
        log(
            "%s %s failed: %s",
            verb.value,
            path,
            error.message,
            extra={
                "request_id": error.request_id,
                "kind": error.kind.value,
                "http_status": error.http_status,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
