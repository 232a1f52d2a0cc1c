"""Repository location model.

A Location describes where a restic repository lives (local path or a
remote backend addressed by prefix), how to unlock it and which backend
credentials restic needs in its environment.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from restic_browser.core.config import get_config
from restic_browser.core.platform_command import get_creation_flags
from restic_browser.core.text_encoding import read_secret_file

logger = logging.getLogger(__name__)


class LocationType(str, Enum):
    """Repository backends supported by restic."""

    LOCAL = "local"
    SFTP = "sftp"
    REST = "rest"
    RCLONE = "rclone"
    AMAZON_S3 = "s3"
    MS_AZURE = "azure"
    BACKBLAZE = "b2"
    GOOGLE_CLOUD_STORAGE = "gs"
    BLOB_STORAGE = "bs"


class LocationTypeInfo(NamedTuple):
    """Prefix, display name and credential variables of a backend."""

    type: LocationType
    prefix: str
    display_name: str
    credentials: tuple[str, ...]


LOCATION_TYPES: tuple[LocationTypeInfo, ...] = (
    LocationTypeInfo(LocationType.LOCAL, "", "Local Path", ()),
    LocationTypeInfo(LocationType.SFTP, "sftp", "SFTP", ()),
    LocationTypeInfo(
        LocationType.REST, "rest", "REST Server", ("RESTIC_REST_USERNAME", "RESTIC_REST_PASSWORD")
    ),
    LocationTypeInfo(LocationType.RCLONE, "rclone", "RCLONE", ()),
    LocationTypeInfo(
        LocationType.AMAZON_S3, "s3", "Amazon S3", ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY")
    ),
    LocationTypeInfo(
        LocationType.MS_AZURE,
        "azure",
        "Azure Blob Storage",
        ("AZURE_ACCOUNT_NAME", "AZURE_ACCOUNT_KEY"),
    ),
    LocationTypeInfo(
        LocationType.BACKBLAZE, "b2", "Backblaze B2", ("B2_ACCOUNT_ID", "B2_ACCOUNT_KEY")
    ),
    LocationTypeInfo(
        LocationType.GOOGLE_CLOUD_STORAGE,
        "gs",
        "Google Cloud Storage",
        ("GOOGLE_PROJECT_ID", "GOOGLE_APPLICATION_CREDENTIALS"),
    ),
    LocationTypeInfo(LocationType.BLOB_STORAGE, "bs", "Blob Storage", ()),
)

KNOWN_PREFIXES = frozenset(info.prefix for info in LOCATION_TYPES)

# Seconds a password command may run when no restic timeout is configured
DEFAULT_PASSWORD_COMMAND_TIMEOUT = 60.0

# Environment variables read by Location.from_env, keyed by option name
RESTIC_ENV_OPTIONS: dict[str, str] = {
    "repository": "RESTIC_REPOSITORY",
    "repository-file": "RESTIC_REPOSITORY_FILE",
    "password": "RESTIC_PASSWORD",
    "password-file": "RESTIC_PASSWORD_FILE",
    "password-command": "RESTIC_PASSWORD_COMMAND",
}


class EnvValue(BaseModel):
    """A single backend credential, passed to restic as environment variable."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str = Field(default="", repr=False)


class Location(BaseModel):
    """A restic repository location.

    Attributes:
        prefix: Backend prefix ("" for local paths), e.g. "b2" or "s3".
        path: Local path, URL or bucket name without the prefix. Raw
            repository strings such as "s3:host/bucket" must be split with
            from_repository_string().
        password: Repository password.
        credentials: Ordered backend credential variables.
        insecure_tls: Pass --insecure-tls to restic.

    Example:
        >>> Location(prefix="b2", path="bucket:/backup").path_or_bucket_name()
        'b2:bucket:/backup'

    """

    model_config = ConfigDict(frozen=True)

    prefix: str = ""
    path: str
    password: str = Field(default="", repr=False)
    credentials: tuple[EnvValue, ...] = ()
    insecure_tls: bool = False

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Only known backend prefixes are accepted."""
        if v not in KNOWN_PREFIXES:
            known = ", ".join(sorted(p for p in KNOWN_PREFIXES if p))
            raise ValueError(f"unknown location prefix '{v}', expected one of: {known}")
        return v

    @model_validator(mode="after")
    def validate_path_without_prefix(self) -> Location:
        """A local path must not start with a backend prefix."""
        if not self.prefix:
            for prefix in KNOWN_PREFIXES:
                if prefix and self.path.startswith(prefix + ":"):
                    raise ValueError(
                        f"path '{self.path}' includes the backend prefix '{prefix}', "
                        "use Location.from_repository_string()"
                    )
        return self

    @field_validator("credentials", mode="before")
    @classmethod
    def coerce_credential_pairs(cls, v: object) -> object:
        """Accept (name, value) pairs and mappings besides EnvValue objects."""
        if v is None:
            return ()
        if isinstance(v, Mapping):
            return tuple(EnvValue(name=k, value=val) for k, val in v.items())
        if isinstance(v, list | tuple):
            return tuple(
                EnvValue(name=item[0], value=item[1])
                if isinstance(item, list | tuple) and len(item) == 2
                else item
                for item in v
            )
        return v

    def path_or_bucket_name(self) -> str:
        """Return the repository target as passed to ``--repo``.

        Returns:
            ``prefix:path`` for remote backends, the plain path otherwise.

        """
        if self.prefix:
            return f"{self.prefix}:{self.path}"
        return self.path

    @property
    def location_type(self) -> LocationTypeInfo:
        """Backend info matching this location's prefix."""
        for info in LOCATION_TYPES:
            if info.prefix == self.prefix:
                return info
        raise AssertionError(f"validated prefix without location type: {self.prefix}")

    @classmethod
    def from_repository_string(
        cls,
        repository: str,
        *,
        password: str = "",
        insecure_tls: bool = False,
        environ: Mapping[str, str] | None = None,
    ) -> Location:
        """Split a restic repository string into prefix and path.

        Credential variables of the matched backend are collected from
        ``environ`` (default: the process environment).

        Args:
            repository: Repository as given to restic, e.g. "s3:host/bucket".
            password: Repository password.
            insecure_tls: Whether to pass --insecure-tls.
            environ: Environment to read backend credentials from.

        Returns:
            The parsed Location.

        """
        environ = os.environ if environ is None else environ
        repository = repository.strip()
        for info in LOCATION_TYPES:
            if info.prefix and repository.startswith(info.prefix + ":"):
                return cls(
                    prefix=info.prefix,
                    path=repository[len(info.prefix) + 1 :].strip(),
                    password=password,
                    credentials=tuple(
                        EnvValue(name=name, value=environ.get(name, ""))
                        for name in info.credentials
                    ),
                    insecure_tls=insecure_tls,
                )
        return cls(path=repository, password=password, insecure_tls=insecure_tls)

    @classmethod
    def from_args(
        cls,
        args: Mapping[str, str | None],
        environ: Mapping[str, str] | None = None,
        *,
        password_command_timeout: float | None = None,
    ) -> Location:
        """Create a Location from restic style options.

        Recognized options: ``repository``/``repo``, ``repository-file``,
        ``password``/``pass``, ``password-file``, ``password-command`` and
        ``insecure-tls``. File and command variants take precedence over the
        direct values, as they do in restic. Unreadable files and failing
        password commands yield empty values (logged as warnings) so a host
        can still ask the user. A password command that runs longer than
        the timeout is killed and counts as failed.

        Args:
            args: Option name -> value. None and "" values are ignored.
            environ: Environment to read backend credentials from.
            password_command_timeout: Seconds the password command may run
                (default: the configured restic timeout, else 60s).

        Returns:
            The resulting Location (path may be empty).

        """
        options = {k: v for k, v in args.items() if v}

        path = ""
        if "repository-file" in options:
            path = _read_option_file(options["repository-file"], "repository")
        else:
            path = options.get("repository") or options.get("repo") or ""

        password = ""
        if "password-file" in options:
            password = _read_option_file(options["password-file"], "password")
        elif "password-command" in options:
            password = _run_password_command(
                options["password-command"], password_command_timeout
            )
        else:
            password = options.get("password") or options.get("pass") or ""

        insecure_tls = "insecure-tls" in options
        if not path:
            return cls(path="", password=password, insecure_tls=insecure_tls)
        return cls.from_repository_string(
            path, password=password, insecure_tls=insecure_tls, environ=environ
        )

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        password_command_timeout: float | None = None,
    ) -> Location:
        """Create a Location from restic's own environment variables.

        Args:
            environ: Environment to read (default: the process environment).
            password_command_timeout: See from_args().

        Returns:
            Location described by RESTIC_REPOSITORY[_FILE] and
            RESTIC_PASSWORD[_FILE|_COMMAND]; path is empty if unset.

        """
        environ = os.environ if environ is None else environ
        return cls.from_args(
            {option: environ.get(var) for option, var in RESTIC_ENV_OPTIONS.items()},
            environ=environ,
            password_command_timeout=password_command_timeout,
        )


def _read_option_file(path: str, what: str) -> str:
    try:
        return read_secret_file(path)
    except OSError as e:
        logger.warning("Cannot read %s file %s: %s", what, path, e)
        return ""


def _run_password_command(command: str, timeout: float | None) -> str:
    argv = shlex.split(command)
    if not argv:
        return ""
    if timeout is None:
        timeout = get_config().restic.timeout or DEFAULT_PASSWORD_COMMAND_TIMEOUT
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            check=False,
            timeout=timeout,
            creationflags=get_creation_flags(),
        )
    except subprocess.TimeoutExpired:
        logger.warning("Password command '%s' timed out after %.1fs", argv[0], timeout)
        return ""
    except OSError as e:
        logger.warning("Failed to run password command '%s': %s", argv[0], e)
        return ""
    if result.returncode != 0:
        logger.warning(
            "Password command '%s' failed with exit code %d", argv[0], result.returncode
        )
        return ""
    return result.stdout.decode("utf-8", errors="replace").rstrip()
