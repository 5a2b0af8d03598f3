from dgs.games.registry import FixedPorts, Game, GamePort, register_game

valheim = Game(
    name="valheim",
    display_name="Valheim",
    image="docker.io/lloesche/valheim-server",
    ports=FixedPorts(ports=(
        GamePort(port=2456, protocol="udp"),
        GamePort(port=2457, protocol="udp"),
    )),
)

register_game(valheim)
