from dgs.games.registry import VERSION_ENV, Game, SinglePort, VersionConfig, register_game

_VERSION_HELP = (
    "Minecraft version to run, e.g. 1.20.4. Also accepts LATEST and SNAPSHOT. "
    "Defaults to the latest release."
)

minecraft = Game(
    name="minecraft",
    display_name="Minecraft Java Edition",
    image="docker.io/itzg/minecraft-server",
    ports=SinglePort(port=25565, protocol="tcp"),
    envs=("EULA=TRUE",),
    version=VersionConfig(strategy=VERSION_ENV, help=_VERSION_HELP, env="VERSION"),
)

minecraft_bedrock = Game(
    name="minecraft-bedrock",
    display_name="Minecraft Bedrock Edition",
    image="docker.io/itzg/minecraft-bedrock-server",
    ports=SinglePort(port=19132, protocol="udp"),
    envs=("EULA=TRUE",),
    version=VersionConfig(
        strategy=VERSION_ENV,
        help="Bedrock server version, e.g. 1.20.51.01, LATEST or PREVIEW.",
        env="VERSION",
    ),
)

register_game(minecraft)
register_game(minecraft_bedrock)
