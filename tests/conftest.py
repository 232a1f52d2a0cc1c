"""Pytest configuration and fixtures for restic-browser tests."""

import pytest


@pytest.fixture(autouse=True)
def reset_and_load_default_config(request):
    """Reset config singleton and load the default config for tests.

    Tests that need NO config (e.g., testing config loading itself) can use:
        @pytest.mark.no_auto_config
    """
    from restic_browser.core.config import _reset_config, load_config

    _reset_config()
    if not request.node.get_closest_marker("no_auto_config"):
        load_config(None)

    yield

    _reset_config()


@pytest.fixture(autouse=True)
def clean_restic_env(monkeypatch):
    """Keep the developer's restic environment out of tests."""
    for name in (
        "RESTIC_REPOSITORY",
        "RESTIC_REPOSITORY_FILE",
        "RESTIC_PASSWORD",
        "RESTIC_PASSWORD_FILE",
        "RESTIC_PASSWORD_COMMAND",
        "RESTIC_BROWSER_RESTIC_PATH",
    ):
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# Fake process runner
# =============================================================================


class FakeRunner:
    """ProcessRunner stand-in returning queued results without spawning.

    Every call is recorded in ``calls`` as a dict with the keyword arguments
    the runner received. ``run_redirected`` writes ``redirect_output`` into
    the sink before returning the queued result.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.results: list = []
        self.redirect_output = b""
        self.on_call = None

    def queue(self, stdout: str = "", stderr: str = "", exit_code: int = 0, error=None):
        from restic_browser.restic.process import CommandResult

        self.results.append(
            CommandResult(args=(), stdout=stdout, stderr=stderr, exit_code=exit_code, error=error)
        )
        return self

    def _next(self, path, args):
        from dataclasses import replace

        from restic_browser.restic.process import CommandResult

        result = self.results.pop(0) if self.results else CommandResult((), "", "", 0)
        return replace(result, args=(path, *args))

    def run(self, path, args, *, env=None, timeout=None, cancel_token=None, group=None):
        self.calls.append(
            {"path": path, "args": list(args), "env": env, "timeout": timeout,
             "cancel_token": cancel_token, "group": group}
        )
        if self.on_call is not None:
            self.on_call(self.calls[-1])
        return self._next(path, args)

    def run_redirected(
        self, path, args, sink, *, env=None, timeout=None, cancel_token=None, group=None
    ):
        self.calls.append(
            {"path": path, "args": list(args), "env": env, "timeout": timeout,
             "cancel_token": cancel_token, "group": group, "redirected": True}
        )
        if self.on_call is not None:
            self.on_call(self.calls[-1])
        sink.write(self.redirect_output)
        return self._next(path, args)


@pytest.fixture
def fake_runner() -> FakeRunner:
    """A FakeRunner with an empty result queue."""
    return FakeRunner()


@pytest.fixture
def make_client(fake_runner, tmp_path):
    """Factory for ResticClient instances bound to fake_runner."""
    from restic_browser.restic.client import ResticClient, ResticVersion

    def factory(version=(0, 16, 2), **kwargs):
        return ResticClient(
            tmp_path / "restic",
            runner=fake_runner,
            version=ResticVersion(*version),
            **kwargs,
        )

    return factory


SNAPSHOTS_JSON = """[
  {"time": "2023-01-15T10:30:00.123456789+01:00", "tree": "aaaa", "paths": ["/home/user"],
   "hostname": "laptop", "username": "user", "uid": 1000, "gid": 1000,
   "id": "1f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c5b6a7988",
   "short_id": "1f2e3d4c"},
  {"time": "2023-02-01T08:00:00Z", "tree": "bbbb", "paths": ["/etc"], "tags": ["daily"],
   "hostname": "server", "username": "root",
   "id": "9a8b7c6d5e4f30219a8b7c6d5e4f30219a8b7c6d5e4f30219a8b7c6d5e4f3021",
   "short_id": "9a8b7c6d"}
]"""

LS_OUTPUT = (
    '{"time":"2023-01-15T10:30:00.123456789+01:00","tree":"aaaa","paths":["/home/user"],'
    '"hostname":"laptop","id":"1f2e3d4c","short_id":"1f2e3d4c","struct_type":"snapshot"}\n'
    '{"name":"user","type":"dir","path":"/home/user","uid":1000,"gid":1000,"mode":2147484141,'
    '"mtime":"2023-01-15T10:00:00.5+01:00","struct_type":"node"}\n'
    '{"name":"notes.txt","type":"file","path":"/home/user/notes.txt","uid":1000,"gid":1000,'
    '"size":42,"mode":420,"mtime":"2023-01-14T09:00:00.987654321+01:00","struct_type":"node"}\n'
    '{"name":"docs","type":"dir","path":"/home/user/docs","uid":1000,"gid":1000,'
    '"mode":2147484141,"struct_type":"node"}\n'
)


@pytest.fixture
def snapshots_json() -> str:
    """Two snapshots as printed by ``restic snapshots --json``."""
    return SNAPSHOTS_JSON


@pytest.fixture
def ls_output() -> str:
    """A directory listing as printed by ``restic ls --json``."""
    return LS_OUTPUT
