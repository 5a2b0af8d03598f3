from dataclasses import dataclass, field

from dgs.control.errors import RecordProjectionError
from dgs.games.registry import find_by_image, resolve_game

BASE_LABEL = "dgs"
TAG_LABEL_PREFIX = "dgs-"
CONTAINER_NAME_PREFIX = "dgs-tmp"

CONTAINER_STATES = ("created", "restarting", "running", "removing", "paused", "exited", "dead")
PROTOCOLS = ("tcp", "udp")
MAX_PORT = 65535


def tag_label(tag: str) -> str:
    return TAG_LABEL_PREFIX + tag.lower()


@dataclass(frozen=True)
class Port:
    container: int
    host: int
    protocol: str


@dataclass(frozen=True)
class ServerInfo:
    name: str
    game: str
    tags: tuple[str, ...]
    ports: tuple[Port, ...]
    state: str


@dataclass
class ServerFilter:
    name: str | None = None
    game: str | None = None
    tags: list[str] = field(default_factory=list)
    state: str | None = None

    def __post_init__(self):
        self.tags = [t.lower() for t in self.tags]
        if self.state:
            self.state = self.state.lower()


@dataclass(frozen=True)
class ServerQuery:
    filters: dict[str, list[str]]
    name: str = ""
    game: str | None = None
    tags: tuple[str, ...] = ()
    state: str | None = None

    def matches(self, server: ServerInfo) -> bool:
        if self.name not in server.name.lower():
            return False
        if self.game is not None and server.game != self.game:
            return False
        if not set(self.tags) <= set(server.tags):
            return False
        return self.state is None or server.state == self.state


def build_query(server_filter: ServerFilter) -> ServerQuery:
    """Translate a ServerFilter into runtime filters plus a post-filter.

    The runtime filters may select more than the final result; ``matches``
    decides membership.
    """
    filters: dict[str, list[str]] = {
        "label": [BASE_LABEL] + [tag_label(t) for t in server_filter.tags],
    }
    game_name = None
    if server_filter.game:
        game = resolve_game(server_filter.game).game_or_raise()
        filters["ancestor"] = [game.image]
        game_name = game.name
    if server_filter.state:
        filters["status"] = [server_filter.state]
    return ServerQuery(
        filters=filters,
        name=(server_filter.name or "").lower(),
        game=game_name,
        tags=tuple(server_filter.tags),
        state=server_filter.state,
    )


def _port_number(value, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_PORT:
        raise RecordProjectionError(f"{what} port out of range: {value!r}")
    return value


def _project_ports(raw_ports: list[dict]) -> tuple[Port, ...]:
    ports: list[Port] = []
    for raw in raw_ports:
        private, public, proto = raw.get("PrivatePort"), raw.get("PublicPort"), raw.get("Type")
        if private is None or public is None or not proto:
            continue
        proto = str(proto).lower()
        if proto not in PROTOCOLS:
            continue
        port = Port(
            container=_port_number(private, "container"),
            host=_port_number(public, "host"),
            protocol=proto,
        )
        # IPv4 and IPv6 bindings show up as separate entries
        if port not in ports:
            ports.append(port)
    return tuple(ports)


def project_container(record: dict) -> ServerInfo:
    """Map a raw container list entry to ServerInfo or raise RecordProjectionError."""
    names = record.get("Names") or []
    if len(names) != 1:
        raise RecordProjectionError(f"expected exactly one name, got {names!r}")

    image = record.get("Image")
    game = find_by_image(image) if image else None
    if game is None:
        raise RecordProjectionError(f"image {image!r} does not belong to a known game")

    labels, raw_ports, state = record.get("Labels"), record.get("Ports"), record.get("State")
    if labels is None or raw_ports is None or not state:
        raise RecordProjectionError("record is missing labels, ports or state")
    state = str(state).lower()
    if state not in CONTAINER_STATES:
        raise RecordProjectionError(f"unknown container state {state!r}")

    return ServerInfo(
        name=names[0].lstrip("/"),
        game=game.name,
        tags=tuple(
            label[len(TAG_LABEL_PREFIX):] for label in labels
            if label.startswith(TAG_LABEL_PREFIX)
        ),
        ports=_project_ports(raw_ports),
        state=state,
    )


def list_servers(runtime, server_filter: ServerFilter, on_debug=None) -> list[ServerInfo]:
    query = build_query(server_filter)
    servers = []
    for record in runtime.list_containers(all=True, filters=query.filters):
        try:
            server = project_container(record)
        except RecordProjectionError as e:
            if on_debug:
                on_debug(f"Skipping container {record.get('Id', '?')[:12]}: {e}")
            continue
        if query.matches(server):
            servers.append(server)
    return servers
