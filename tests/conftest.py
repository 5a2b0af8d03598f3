from types import SimpleNamespace
from unittest.mock import MagicMock

import docker
import pytest

from dgs.games.registry import load_games


@pytest.fixture(autouse=True)
def _block_real_docker(monkeypatch):
    """Prevent any test from talking to a real Docker or Podman daemon."""

    def _blocked(*a, **kw):
        raise RuntimeError(
            "Unmocked Docker client! Patch ContainerRuntime or pass a fake runtime."
        )

    monkeypatch.setattr(docker, "APIClient", _blocked)
    monkeypatch.setattr(docker, "from_env", _blocked)


@pytest.fixture(autouse=True)
def _games_loaded():
    load_games()


# ── Record factories ──


@pytest.fixture
def make_container_record():
    """Factory for raw container list entries. Override any field via kwargs."""
    def _make(**overrides):
        defaults = dict(
            Id="0123456789abcdef",
            Names=["/s1"],
            Image="docker.io/itzg/minecraft-server:latest",
            Labels={"dgs": "", "dgs-survival": ""},
            Ports=[{"IP": "0.0.0.0", "PrivatePort": 25565, "PublicPort": 40001, "Type": "tcp"}],
            State="running",
        )
        defaults.update(overrides)
        return defaults
    return _make


@pytest.fixture
def fake_runtime():
    """MagicMock runtime that records calls in order.

    Returns a SimpleNamespace with attributes:
        .runtime   - the MagicMock passed to code under test
        .calls     - list of method names in call order
    """
    calls = []
    runtime = MagicMock()

    def _record(name, rv=None):
        def _side_effect(*a, **kw):
            calls.append(name)
            return rv
        return _side_effect

    runtime.create_container.side_effect = _record("create", "c0ffee1234567890")
    runtime.start_container.side_effect = _record("start")
    runtime.stop_container.side_effect = _record("stop")
    runtime.remove_container.side_effect = _record("remove")

    def _pull(image, tag=None):
        calls.append("pull")
        return iter([{"status": "Pulling from factoriotools/factorio", "id": tag}])

    runtime.pull_image.side_effect = _pull
    runtime.list_containers.return_value = []
    return SimpleNamespace(runtime=runtime, calls=calls)
