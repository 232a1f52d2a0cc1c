"""Tests for the credential context."""

import threading

from restic_browser.restic.credentials import CredentialContext
from restic_browser.restic.location import Location

S3_LOCATION = Location(
    prefix="s3",
    path="s3.amazonaws.com/bucket",
    password="s3-password",
    credentials=[("AWS_ACCESS_KEY_ID", "id"), ("AWS_SECRET_ACCESS_KEY", "secret")],
)
LOCAL_LOCATION = Location(path="/srv/backup", password="local-password")


class TestVariables:
    """Tests for CredentialContext.variables()."""

    def test_variables_for_remote_location(self) -> None:
        """Repository, password and backend credentials are set."""
        assert CredentialContext.variables(S3_LOCATION) == {
            "RESTIC_REPOSITORY": "s3:s3.amazonaws.com/bucket",
            "RESTIC_REPOSITORY_FILE": "",
            "RESTIC_PASSWORD": "s3-password",
            "AWS_ACCESS_KEY_ID": "id",
            "AWS_SECRET_ACCESS_KEY": "secret",
        }

    def test_repository_file_is_blanked(self) -> None:
        """A repository file from the parent environment cannot win."""
        assert CredentialContext.variables(LOCAL_LOCATION)["RESTIC_REPOSITORY_FILE"] == ""


class TestGlobalMode:
    """apply() / clear() on a bound environment."""

    def test_apply_and_clear(self) -> None:
        """clear() blanks exactly the variables apply() set."""
        environ = {"PATH": "/usr/bin"}
        context = CredentialContext(environ, isolated=False)

        context.apply(S3_LOCATION)
        assert environ["RESTIC_PASSWORD"] == "s3-password"
        assert environ["AWS_ACCESS_KEY_ID"] == "id"

        context.clear(S3_LOCATION)
        assert environ["PATH"] == "/usr/bin"
        for name in CredentialContext.variables(S3_LOCATION):
            assert environ[name] == ""

    def test_apply_is_idempotent(self) -> None:
        """Applying twice equals applying once."""
        once: dict[str, str] = {}
        twice: dict[str, str] = {}
        CredentialContext(once, isolated=False).apply(S3_LOCATION)
        context = CredentialContext(twice, isolated=False)
        context.apply(S3_LOCATION)
        context.apply(S3_LOCATION)
        assert once == twice

    def test_scoped_applies_and_clears(self) -> None:
        """scoped() applies before and clears after the block."""
        environ: dict[str, str] = {}
        context = CredentialContext(environ, isolated=False)
        with context.scoped(LOCAL_LOCATION) as env:
            assert env["RESTIC_PASSWORD"] == "local-password"
            assert environ["RESTIC_PASSWORD"] == "local-password"
        assert environ["RESTIC_PASSWORD"] == ""

    def test_scoped_clears_on_error(self) -> None:
        """Credentials are cleared even if the invocation fails."""
        environ: dict[str, str] = {}
        context = CredentialContext(environ, isolated=False)
        try:
            with context.scoped(LOCAL_LOCATION):
                raise RuntimeError("restic failed")
        except RuntimeError:
            pass
        assert environ["RESTIC_REPOSITORY"] == ""

    def test_concurrent_scopes_do_not_interleave(self) -> None:
        """Two threads never observe each other's credentials."""
        environ: dict[str, str] = {}
        context = CredentialContext(environ, isolated=False)
        errors: list[str] = []

        def worker(location: Location) -> None:
            for _ in range(200):
                with context.scoped(location) as env:
                    if env["RESTIC_PASSWORD"] != location.password:
                        errors.append(env["RESTIC_PASSWORD"])
                    if environ["RESTIC_REPOSITORY"] != location.path_or_bucket_name():
                        errors.append(environ["RESTIC_REPOSITORY"])

        threads = [
            threading.Thread(target=worker, args=(S3_LOCATION,)),
            threading.Thread(target=worker, args=(LOCAL_LOCATION,)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert environ["RESTIC_PASSWORD"] == ""


class TestIsolatedMode:
    """Private environments per invocation."""

    def test_environment_overlays_bound_environment(self) -> None:
        """The child environment extends the parent one."""
        environ = {"PATH": "/usr/bin", "RESTIC_REPOSITORY_FILE": "/etc/repo"}
        env = CredentialContext(environ).environment(S3_LOCATION)
        assert env["PATH"] == "/usr/bin"
        assert env["RESTIC_REPOSITORY_FILE"] == ""
        assert env["AWS_SECRET_ACCESS_KEY"] == "secret"

    def test_scoped_leaves_bound_environment_untouched(self) -> None:
        """Isolated mode never mutates the bound environment."""
        environ = {"PATH": "/usr/bin"}
        context = CredentialContext(environ)
        with context.scoped(S3_LOCATION) as env:
            assert env["RESTIC_PASSWORD"] == "s3-password"
            assert "RESTIC_PASSWORD" not in environ
        assert environ == {"PATH": "/usr/bin"}
