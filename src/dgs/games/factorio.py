from dgs.games.registry import VERSION_TAG, Game, SinglePort, VersionConfig, register_game

factorio = Game(
    name="factorio",
    display_name="Factorio",
    image="docker.io/factoriotools/factorio",
    ports=SinglePort(port=34197, protocol="udp"),
    version=VersionConfig(
        strategy=VERSION_TAG,
        help="Image tag to pull, e.g. stable, latest or 1.1.110.",
    ),
)

register_game(factorio)
