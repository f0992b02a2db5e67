"""
Forced-route transport.

Dials a fixed backend IP instead of whatever the logical hostname resolves to,
then speaks TLS to it as if it were the logical host (SNI and Host header).

Certificate verification is disabled here and only here, and the matching
InsecureRequestWarning is silenced for the logical host only. The harness
picks the machine by IP on purpose, and whether that machine's certificate matches is
not what a comparison run is testing. Do not reuse this transport for
anything that talks to untrusted networks.
"""

import re
import socket
import ssl
import warnings
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.exceptions import ConnectTimeoutError, InsecureRequestWarning, NewConnectionError
from urllib3.util.connection import create_connection

from proxydiff.domain.records import BackendEndpoint
from proxydiff.exceptions import BackendConnectionError, FetchTimeoutError
from proxydiff.utils.logger import get_logger

logger = get_logger(__name__)

SocketOptions = Optional[Sequence[Tuple[int, int, int]]]


class ConnectionFactory(ABC):
    """A dialing strategy bound to one fixed network identity."""

    @abstractmethod
    def dial(self, timeout: Optional[float] = None) -> socket.socket:
        """Return a connected, ready-to-use socket."""


class ForcedRouteTransport(ConnectionFactory):
    """
    Connection factory bound to one BackendEndpoint and one logical hostname.

    Holds no per-connection state, so a single instance is shared by every
    thread of a run.
    """

    def __init__(
        self,
        backend: BackendEndpoint,
        logical_host: str,
        connect_timeout: float = 10.0,
    ):
        """
        Args:
            backend: Physical server every socket is connected to
            logical_host: Name presented for SNI and the Host header
            connect_timeout: Default TCP connect / TLS handshake timeout in seconds
        """
        self.backend = backend
        self.logical_host = logical_host
        self.connect_timeout = connect_timeout

        self._ssl_context = ssl.create_default_context()
        self._ssl_context.check_hostname = False
        self._ssl_context.verify_mode = ssl.CERT_NONE

    def __repr__(self) -> str:
        return f"ForcedRouteTransport({self.backend}, logical_host={self.logical_host!r})"

    def connect_tcp(
        self,
        timeout: Optional[float] = None,
        socket_options: SocketOptions = None,
    ) -> socket.socket:
        """
        Open a raw TCP connection to the backend IP.

        Socket errors propagate unchanged (OSError / TimeoutError) so that an
        HTTP layer can map them to its own exception types.
        """
        return create_connection(
            (self.backend.ip, self.backend.port),
            timeout=timeout if timeout is not None else self.connect_timeout,
            socket_options=socket_options,
        )

    def dial(self, timeout: Optional[float] = None) -> ssl.SSLSocket:
        """
        TCP-connect to the backend and complete a TLS handshake as the logical host.

        Returns:
            Connected SSLSocket; the caller owns and closes it

        Raises:
            FetchTimeoutError: Connect or handshake exceeded the timeout
            BackendConnectionError: TCP connect or TLS handshake failed
        """
        try:
            sock = self.connect_tcp(timeout)
        except socket.timeout as e:
            raise FetchTimeoutError(
                self.backend.name, None, f"connect timed out: {e}", backend=str(self.backend)
            ) from e
        except OSError as e:
            raise BackendConnectionError(
                self.backend.name, None, f"TCP connect failed: {e}", backend=str(self.backend)
            ) from e

        try:
            tls_sock = self._ssl_context.wrap_socket(sock, server_hostname=self.logical_host)
        except socket.timeout as e:
            sock.close()
            raise FetchTimeoutError(
                self.backend.name, None, f"TLS handshake timed out: {e}", backend=str(self.backend)
            ) from e
        except (ssl.SSLError, OSError) as e:
            sock.close()
            raise BackendConnectionError(
                self.backend.name, None, f"TLS handshake failed: {e}", backend=str(self.backend)
            ) from e

        logger.debug(
            "TLS connection established",
            operation="dial",
            context={
                "backend": str(self.backend),
                "server_name": self.logical_host,
                "tls_version": tls_sock.version(),
            },
        )
        return tls_sock

    def pool_class(self) -> type:
        """Build an HTTPS connection pool class whose connections dial this backend."""
        transport = self

        class ForcedRouteConnection(HTTPSConnection):
            def __init__(self, *args, **kwargs):
                kwargs["server_hostname"] = transport.logical_host
                kwargs["cert_reqs"] = "CERT_NONE"
                kwargs["assert_hostname"] = False
                super().__init__(*args, **kwargs)

            def _new_conn(self) -> socket.socket:
                timeout = self.timeout if isinstance(self.timeout, (int, float)) else None
                try:
                    return transport.connect_tcp(timeout, socket_options=self.socket_options)
                except socket.timeout as e:
                    raise ConnectTimeoutError(
                        self,
                        f"Connection to {transport.backend} timed out. (connect timeout={timeout})",
                    ) from e
                except OSError as e:
                    raise NewConnectionError(
                        self, f"Failed to establish a new connection to {transport.backend}: {e}"
                    ) from e

        class ForcedRoutePool(HTTPSConnectionPool):
            ConnectionCls = ForcedRouteConnection

        return ForcedRoutePool

    def mount(self, session: requests.Session) -> requests.Session:
        """
        Route every https:// request of ``session`` through this backend.

        Also turns off certificate verification on the session; the session
        must not be used for anything else.
        """
        # Only requests to the logical host are silenced; the filter is process-wide
        warnings.filterwarnings(
            "ignore",
            message=f"Unverified HTTPS request is being made to host '{re.escape(self.logical_host)}'",
            category=InsecureRequestWarning,
        )

        session.verify = False
        session.mount("https://", ForcedRouteAdapter(self))
        return session


class ForcedRouteAdapter(HTTPAdapter):
    """requests transport adapter that pools ForcedRouteTransport connections."""

    def __init__(self, transport: ForcedRouteTransport, **kwargs):
        self.transport = transport
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": HTTPConnectionPool,
            "https": self.transport.pool_class(),
        }
