"""
Dual-Backend Fetcher

Issues the same logical request to the old and the new backend and hands back
both responses untouched. Judging them is someone else's job.
"""

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, Dict, Optional, Tuple

import requests

from proxydiff.config.settings import Settings
from proxydiff.domain.records import RequestSpec, ResponseRecord
from proxydiff.exceptions import BackendConnectionError, FetchError, FetchTimeoutError
from proxydiff.transport.forced_route import ForcedRouteTransport
from proxydiff.utils.logger import get_logger, redact_headers

logger = get_logger(__name__)

SessionFactory = Callable[[ForcedRouteTransport], requests.Session]


def default_session_factory(transport: ForcedRouteTransport) -> requests.Session:
    """Create a requests.Session whose https:// traffic goes to the transport's backend."""
    return transport.mount(requests.Session())


class DualBackendFetcher:
    """
    Fetches one RequestSpec from both backends concurrently.

    Each side owns its own requests.Session, so the two fetches share no
    mutable state. Redirects are not followed and non-2xx statuses are data.
    """

    SIDES = ("old", "new")

    def __init__(
        self,
        old_transport: ForcedRouteTransport,
        new_transport: ForcedRouteTransport,
        settings: Settings,
        session_factory: SessionFactory = default_session_factory,
    ):
        """
        Args:
            old_transport: Transport bound to the old backend
            new_transport: Transport bound to the new backend
            settings: Run settings (base URL, headers, timeouts)
            session_factory: Builds the per-side session; swapped out in tests
        """
        self.transports = {"old": old_transport, "new": new_transport}
        self.settings = settings
        self.session_factory = session_factory

    def build_request(self, path: str) -> RequestSpec:
        """Resolve ``path`` against the base URL with the fixed per-run headers."""
        return RequestSpec(
            path=path,
            base_url=self.settings.base_url,
            headers=self.settings.request_headers(),
        )

    def fetch(
        self, request_spec: RequestSpec, deadline: Optional[float] = None
    ) -> Tuple[ResponseRecord, ResponseRecord]:
        """
        Fetch ``request_spec`` from both backends.

        Args:
            request_spec: Request to send to both sides
            deadline: time.monotonic() value by which both responses must be in;
                defaults to now + scenario_timeout

        Returns:
            (old_response, new_response)

        Raises:
            BackendConnectionError: A backend could not be dialed
            FetchTimeoutError: A backend did not answer before the deadline
        """
        if deadline is None:
            deadline = time.monotonic() + self.settings.scenario_timeout
        if deadline <= time.monotonic():
            raise FetchTimeoutError(
                None,
                request_spec.path,
                f"scenario deadline of {self.settings.scenario_timeout}s already spent",
            )

        # Not a context manager: a hung worker must not block the deadline
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="proxydiff-fetch")
        try:
            futures = {
                side: executor.submit(self._fetch_one, side, request_spec)
                for side in self.SIDES
            }

            results: Dict[str, ResponseRecord] = {}
            errors: Dict[str, FetchError] = {}
            for side in self.SIDES:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    results[side] = futures[side].result(timeout=remaining)
                except FutureTimeout:
                    futures[side].cancel()
                    errors[side] = FetchTimeoutError(
                        side,
                        request_spec.path,
                        f"no response within {self.settings.scenario_timeout}s scenario deadline",
                        backend=str(self.transports[side].backend),
                    )
                except FetchError as e:
                    errors[side] = e
        finally:
            executor.shutdown(wait=False)

        for side in self.SIDES:
            if side in errors:
                raise errors[side]

        return results["old"], results["new"]

    def _fetch_one(self, side: str, request_spec: RequestSpec) -> ResponseRecord:
        transport = self.transports[side]
        url = request_spec.url
        context = {"side": side, "backend": str(transport.backend), "url": url}

        logger.debug(
            "starting",
            operation="fetch",
            context={**context, "headers": redact_headers(request_spec.headers)},
        )

        start_time = time.time()
        session = self.session_factory(transport)
        try:
            response = session.get(
                url,
                headers=dict(request_spec.headers),
                allow_redirects=False,
                timeout=(self.settings.connect_timeout, self.settings.scenario_timeout),
            )
        except requests.exceptions.Timeout as e:
            logger.debug(f"failed with {e}", operation="fetch", context=context)
            raise FetchTimeoutError(
                side, request_spec.path, str(e), backend=str(transport.backend)
            ) from e
        except requests.exceptions.RequestException as e:
            logger.debug(f"failed with {e}", operation="fetch", context=context)
            raise BackendConnectionError(
                side, request_spec.path, str(e), backend=str(transport.backend)
            ) from e
        finally:
            session.close()

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            f"returned status code {response.status_code}",
            operation="fetch",
            context={**context, "status_code": response.status_code, "duration_ms": round(duration_ms, 2)},
        )

        return ResponseRecord(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.text,
            url=url,
            backend=transport.backend.name,
        )

    def fetch_path(
        self, path: str, deadline: Optional[float] = None
    ) -> Tuple[ResponseRecord, ResponseRecord]:
        """Convenience wrapper: build the RequestSpec for ``path`` and fetch it."""
        return self.fetch(self.build_request(path), deadline=deadline)


def create_fetcher(
    settings: Settings,
    session_factory: Optional[SessionFactory] = None,
) -> DualBackendFetcher:
    """Build both transports from settings and wire them into a fetcher."""
    old_transport = ForcedRouteTransport(
        settings.old_backend, settings.logical_host, settings.connect_timeout
    )
    new_transport = ForcedRouteTransport(
        settings.new_backend, settings.logical_host, settings.connect_timeout
    )
    return DualBackendFetcher(
        old_transport,
        new_transport,
        settings,
        session_factory=session_factory or default_session_factory,
    )
