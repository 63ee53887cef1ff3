"""Server address parsing and normalization."""
import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

import httpx

from ..exceptions import ConfigurationError

# RFC 1123 hostname label: letters, digits, hyphens, not starting/ending with a hyphen
_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


@dataclass(frozen=True)
class ServerEndpoint:
    """A backend address that can be probed and called."""
    host: str
    scheme: str = "http"
    port: Optional[int] = None
    last_verified_at: Optional[datetime] = None

    @property
    def base_url(self) -> str:
        if self.port is None:
            return f"{self.scheme}://{self.host}"
        return f"{self.scheme}://{self.host}:{self.port}"

    def api_url(self, api_prefix: str, path: str) -> str:
        """Join the API prefix and a path onto the base URL.

        Paths that already carry the prefix are not prefixed twice.
        """
        if not path.startswith("/"):
            path = f"/{path}"
        if api_prefix and not (path == api_prefix or path.startswith(f"{api_prefix}/")):
            path = f"{api_prefix}{path}"
        return f"{self.base_url}{path}"

    def verified(self, when: datetime) -> "ServerEndpoint":
        return replace(self, last_verified_at=when)

    def same_address(self, other: Optional["ServerEndpoint"]) -> bool:
        return other is not None and self.base_url == other.base_url


def is_valid_ipv4(value: str) -> bool:
    """Check dotted-quad format with each octet in 0-255."""
    parts = value.split(".")
    if len(parts) != 4:
        return False
    for part in parts:
        if not part.isdigit() or len(part) > 3:
            return False
        if int(part) > 255:
            return False
    return True


def is_valid_hostname(value: str) -> bool:
    """Check hostname format (localhost, single label or dotted labels)."""
    if not value or len(value) > 253:
        return False
    labels = value.rstrip(".").split(".")
    # All-numeric dotted names must pass the IPv4 check instead
    if all(label.isdigit() for label in labels):
        return False
    return all(_LABEL.match(label) for label in labels)


def parse_address(address: str, default_port: int) -> ServerEndpoint:
    """Turn a user- or config-supplied address into a ServerEndpoint.

    - Full http(s) URLs are kept as given (path is ignored)
    - Bare IPv4 addresses and localhost become http://<host>:<default_port>
    - Other hostnames become https://<host>
    - host:port is accepted for both IPs and hostnames

    Raises:
        ConfigurationError: if the address is malformed
    """
    if address is None:
        raise ConfigurationError("Server address is required")
    address = address.strip()
    if not address:
        raise ConfigurationError("Server address is required")

    if address.startswith("http://") or address.startswith("https://"):
        try:
            url = httpx.URL(address)
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"Invalid server URL: {address}") from e
        host = url.host
        if not host or not (is_valid_ipv4(host) or is_valid_hostname(host)):
            raise ConfigurationError(f"Invalid server URL: {address}")
        return ServerEndpoint(host=host, scheme=url.scheme, port=url.port)

    host, port = address, None
    if ":" in address:
        host, _, port_text = address.rpartition(":")
        if not port_text.isdigit() or not 0 < int(port_text) < 65536:
            raise ConfigurationError(f"Invalid port in server address: {address}")
        port = int(port_text)

    if is_valid_ipv4(host) or host == "localhost":
        return ServerEndpoint(host=host, scheme="http", port=port or default_port)
    if is_valid_hostname(host):
        return ServerEndpoint(host=host, scheme="https", port=port)

    raise ConfigurationError(f"Invalid IP address or hostname: {address}")
