import asyncio

import pytest

RUNNING_OUTPUT = (
    "Name          Command         State   Ports\n"
    "--------------------------------------------\n"
    "app_web_1     nginx           Up      80/tcp\n"
    "app_db_1      postgres        Up      5432/tcp\n"
)
EXITED_OUTPUT = RUNNING_OUTPUT.replace("app_db_1      postgres        Up", "app_db_1      postgres        Exit 1")
EMPTY_OUTPUT = (
    "Name   Command   State   Ports\n"
    "------------------------------\n"
)


class FakeBackend:
    """
    Scripted compose backend.

    Each call pops the next queued result for its command: a string is
    returned, an exception is raised. With ``hold`` set, calls wait until
    :meth:`release` is called.
    """

    def __init__(self):
        self.status_results = []
        self.deploy_results = []
        self.kill_results = []
        self.calls = []
        self.hold = False
        self.pending = []

    async def query_status(self, path):
        return await self._respond("ps", path, self.status_results, EMPTY_OUTPUT)

    async def deploy(self, path):
        return await self._respond("up", path, self.deploy_results, None)

    async def kill(self, path):
        return await self._respond("kill", path, self.kill_results, None)

    def release(self):
        self.pending.pop(0).set_result(None)

    async def _respond(self, name, path, queue, default):
        self.calls.append((name, path))
        if self.hold:
            gate = asyncio.get_running_loop().create_future()
            self.pending.append(gate)
            await gate
        result = queue.pop(0) if queue else default
        if isinstance(result, BaseException):
            raise result
        return result


class ManualClock:
    """Replacement for asyncio.sleep that only returns when fired."""

    def __init__(self):
        self.delays = []
        self._pending = None

    async def sleep(self, delay):
        self.delays.append(delay)
        self._pending = asyncio.get_running_loop().create_future()
        await self._pending

    async def wait_armed(self, spins=100):
        for _ in range(spins):
            if self._pending is not None and not self._pending.done():
                return
            await asyncio.sleep(0)
        raise AssertionError("nothing is sleeping on the clock")

    def fire(self):
        if self._pending is None or self._pending.done():
            return False
        self._pending.set_result(None)
        return True


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def compose_file(tmp_path):
    path = tmp_path / "docker-compose.yml"
    path.write_text(
        "services:\n"
        "  web:\n"
        "    image: nginx\n"
        "    depends_on: [api]\n"
        "  api:\n"
        "    image: api\n"
        "    depends_on:\n"
        "      db:\n"
        "        condition: service_healthy\n"
        "    links:\n"
        "      - cache:redis\n"
        "  db:\n"
        "    image: postgres\n"
        "  cache:\n"
        "    image: redis\n"
    )
    return path
