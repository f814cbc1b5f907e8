import pytest

from app.domain.live.stream._supervisor import StreamSupervisor
from tests.domain.live.stream.stream_scripts import ScriptSpawner


@pytest.fixture
async def make_supervisor():
    """Build supervisors with short timeouts; shut them all down afterwards."""
    created: list[StreamSupervisor] = []

    def _make(*scripts: str, **kwargs) -> tuple[StreamSupervisor, ScriptSpawner]:
        spawner = ScriptSpawner(*scripts)
        kwargs.setdefault("start_timeout", 3.0)
        kwargs.setdefault("stop_grace", 0.5)
        kwargs.setdefault("kill_wait", 2.0)
        supervisor = StreamSupervisor(ffmpeg_path="ffmpeg", spawner=spawner, **kwargs)
        created.append(supervisor)
        return supervisor, spawner

    yield _make

    for supervisor in created:
        await supervisor.shutdown()
