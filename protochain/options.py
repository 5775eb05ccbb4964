from __future__ import annotations

from dataclasses import dataclass
from dataclasses import fields

from protochain import exceptions
from protochain import log
from protochain.hops import DEFAULT_TIMEOUT
from protochain.hops import Role
from protochain.net import check
from protochain.net import server_spec

CERT_BASENAME = "server.crt"
KEY_BASENAME = "server.key"


@dataclass
class Options:
    """
    Everything a protochain process can be configured with.

    Each endpoint needs its listen port; Relay, Edge and Presenter also need
    the address of their downstream hop, which defaults to the matching local port.
    """

    listen_host: str = "127.0.0.1"
    origin_port: int = 8000
    relay_port: int = 8001
    edge_port: int = 8002
    presenter_port: int = 8003
    relay_upstream: str | None = None
    edge_upstream: str | None = None
    presenter_upstream: str | None = None
    certfile: str = CERT_BASENAME
    keyfile: str = KEY_BASENAME
    cafile: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    verbosity: str = "info"

    def update(self, **kwargs) -> None:
        known = {f.name for f in fields(self)}
        unknown = set(kwargs) - known
        if unknown:
            raise exceptions.ConfigurationError(f"Unknown options: {', '.join(sorted(unknown))}")
        for k, v in kwargs.items():
            setattr(self, k, v)

    def validate(self) -> None:
        """
        *Raises:*
         - ConfigurationError, describing the first invalid option.
        """
        if not check.is_valid_host(self.listen_host):
            raise exceptions.ConfigurationError(f"Invalid listen host: {self.listen_host}")
        for role in Role:
            port = self.port(role)
            if not check.is_valid_port(port):
                raise exceptions.ConfigurationError(f"Invalid {role.value} port: {port}")
        for role in (Role.RELAY, Role.EDGE, Role.PRESENTER):
            try:
                self.downstream(role)
            except ValueError as e:
                raise exceptions.ConfigurationError(f"Invalid {role.value} upstream: {e}") from e
        if not self.timeout > 0:
            raise exceptions.ConfigurationError(f"Invalid timeout: {self.timeout}")
        if self.verbosity not in log.LogLevels:
            raise exceptions.ConfigurationError(f"Invalid verbosity: {self.verbosity}")

    @property
    def trust_file(self) -> str:
        return self.cafile or self.certfile

    def port(self, role: Role) -> int:
        return {
            Role.ORIGIN: self.origin_port,
            Role.RELAY: self.relay_port,
            Role.EDGE: self.edge_port,
            Role.PRESENTER: self.presenter_port,
        }[role]

    def downstream(self, role: Role) -> str | None:
        """
        The base URL of the hop `role` sends its requests to.

        Origin and Relay listen with TLS, Edge and Presenter in the clear.
        """
        spec, default_role, default_scheme = {
            Role.ORIGIN: (None, None, None),
            Role.RELAY: (self.relay_upstream, Role.ORIGIN, "https"),
            Role.EDGE: (self.edge_upstream, Role.RELAY, "https"),
            Role.PRESENTER: (self.presenter_upstream, Role.EDGE, "http"),
        }[role]
        if default_role is None:
            return None
        if spec is None:
            host = "localhost" if self.listen_host in ("0.0.0.0", "::") else self.listen_host
            spec = f"{host}:{self.port(default_role)}"
        return server_spec.unparse(server_spec.parse(spec, default_scheme))
