"""
Wire clients for InfluxDB and the connection manager that owns them.
"""
import logging
import socket
from typing import Iterable, Iterator, Optional, Union

import requests

from . import config
from .config import parse_url
from .exceptions import ClientConnectionError, WriteError
from .point import BatchPoints

logger = logging.getLogger(__name__)


class HTTPClient:
    """Writes batches to the InfluxDB HTTP API."""

    def __init__(
        self,
        url: str,
        username: str = '',
        password: str = '',
        timeout: float = config.HTTP_TIMEOUT
    ):
        """
        Initialize the HTTP client.

        Args:
            url (str): Base URL of the InfluxDB server
            username (str): Username for basic auth; no auth when empty
            password (str): Password for basic auth
            timeout (float): Request timeout in seconds
        """
        self.url = url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        if username:
            self.session.auth = (username, password)

    def ping(self, timeout: float = config.PING_TIMEOUT) -> str:
        """
        Check that the server is alive.

        Args:
            timeout (float): Probe timeout in seconds

        Returns:
            str: The server version reported by InfluxDB

        Raises:
            ClientConnectionError: If the server cannot be reached
        """
        try:
            response = self.session.get(f"{self.url}/ping", timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ClientConnectionError(f"ping to {self.url} failed: {e}") from e
        return response.headers.get('X-Influxdb-Version', '')

    def write(self, batch: BatchPoints) -> None:
        """
        Write a batch of points in a single request.

        Args:
            batch (BatchPoints): The points to write

        Raises:
            WriteError: If the request fails or the server rejects the batch
        """
        try:
            response = self.session.post(
                f"{self.url}/write",
                params={'db': batch.database, 'precision': batch.precision},
                data=batch.to_line_protocol().encode('utf-8'),
                headers={'Content-Type': 'application/octet-stream'},
                timeout=self.timeout
            )
            response.raise_for_status()
        except (requests.exceptions.RequestException, UnicodeEncodeError) as e:
            raise WriteError(f"write of {len(batch)} points to {self.url} failed: {e}") from e

    def close(self) -> None:
        self.session.close()


class UDPClient:
    """Writes batches to an InfluxDB UDP listener."""

    def __init__(
        self,
        host: str,
        port: int = config.UDP_DEFAULT_PORT,
        payload_size: int = config.UDP_PAYLOAD_SIZE
    ):
        """
        Initialize the UDP client.

        Args:
            host (str): Listener host
            port (int): Listener port
            payload_size (int): Maximum datagram size in bytes

        Raises:
            ClientConnectionError: If the address cannot be resolved
        """
        self.address = (host, port)
        self.payload_size = payload_size
        self._socket = self._open(host, port)

    @staticmethod
    def _open(host: str, port: int) -> socket.socket:
        try:
            addresses = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
        except (OSError, UnicodeError) as e:
            raise ClientConnectionError(f"unable to resolve UDP address {host}:{port}: {e}") from e

        error = None
        for family, socktype, proto, _, sockaddr in addresses:
            sock = None
            try:
                sock = socket.socket(family, socktype, proto)
                sock.connect(sockaddr)
                return sock
            except OSError as e:
                if sock is not None:
                    sock.close()
                error = e
        raise ClientConnectionError(f"unable to open UDP socket to {host}:{port}: {error}")

    def ping(self, timeout: float = config.PING_TIMEOUT) -> str:
        # UDP has no liveness probe
        return ''

    def payloads(self, lines: Iterable[str]) -> Iterator[bytes]:
        """
        Pack lines into datagrams no larger than the payload size.

        A line longer than the payload size is sent in a datagram of its own.
        """
        payload = b''
        for line in lines:
            data = line.encode('utf-8') + b'\n'
            if payload and len(payload) + len(data) > self.payload_size:
                yield payload
                payload = b''
            payload += data
        if payload:
            yield payload

    def write(self, batch: BatchPoints) -> None:
        """
        Send a batch as one or more datagrams.

        Raises:
            WriteError: If a datagram cannot be sent
        """
        try:
            for payload in self.payloads(batch.lines()):
                self._socket.send(payload)
        except (OSError, UnicodeEncodeError) as e:
            raise WriteError(f"write of {len(batch)} points to {self.address} failed: {e}") from e

    def close(self) -> None:
        self._socket.close()


Client = Union[HTTPClient, UDPClient]


def connect(url: str, username: str = '', password: str = '') -> Client:
    """
    Build a wire client for a destination URL.

    An ``http`` URL gets an HTTP client; any other scheme gets a UDP client
    addressed at the URL's host and port.

    Args:
        url (str): Destination URL
        username (str): HTTP basic auth username
        password (str): HTTP basic auth password

    Returns:
        The HTTP or UDP client

    Raises:
        ConfigError: If the URL is invalid
        ClientConnectionError: If the client cannot be built
    """
    parsed = parse_url(url)
    if parsed.scheme == 'http':
        return HTTPClient(url, username=username, password=password, timeout=config.HTTP_TIMEOUT)
    return UDPClient(
        parsed.hostname,
        parsed.port or config.UDP_DEFAULT_PORT,
        payload_size=config.UDP_PAYLOAD_SIZE
    )


class ConnectionManager:
    """Owns the single live wire client and replaces it on demand."""

    def __init__(self, url: str, username: str = '', password: str = ''):
        self.url = url
        self.username = username
        self.password = password
        self.client: Optional[Client] = None

    def connect(self) -> Client:
        """
        Build the initial client.

        Raises:
            ConfigError: If the URL is invalid
            ClientConnectionError: If the client cannot be built
        """
        self.client = connect(self.url, self.username, self.password)
        logger.info("Connected %s to InfluxDB at %s", type(self.client).__name__, self.url)
        return self.client

    def health_check(self, timeout: float = config.PING_TIMEOUT) -> str:
        """
        Probe the current client.

        Returns:
            str: The server version, empty when the transport reports none

        Raises:
            ClientConnectionError: If there is no client or the probe fails
        """
        if self.client is None:
            raise ClientConnectionError("no InfluxDB client")
        return self.client.ping(timeout)

    def rebuild(self) -> Client:
        """
        Replace the current client with a freshly built one.

        The old client is kept when the new one cannot be built.

        Raises:
            ClientConnectionError: If the new client cannot be built
        """
        client = connect(self.url, self.username, self.password)
        old, self.client = self.client, client
        if old is not None:
            old.close()
        logger.info("Recreated InfluxDB client for %s", self.url)
        return client
