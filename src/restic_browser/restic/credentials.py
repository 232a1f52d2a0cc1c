"""Credential context: turning a Location into restic environment variables.

restic reads the repository, its password and backend credentials from
environment variables. There are two ways to hand them over:

- isolated (default): every invocation gets a private, fully formed
  environment map. Nothing global is touched, so concurrent operations on
  different locations cannot see each other's secrets.
- global: the variables are written to the bound environment mapping
  (``os.environ`` by default) for the duration of one invocation. The
  apply -> run -> clear sequence is serialized by the context's lock so
  no other operation sharing the context can observe it half way.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager

from restic_browser.restic.location import Location

logger = logging.getLogger(__name__)

REPOSITORY_ENV = "RESTIC_REPOSITORY"
# restic prefers the file variable over RESTIC_REPOSITORY when both are set
REPOSITORY_FILE_ENV = "RESTIC_REPOSITORY_FILE"
PASSWORD_ENV = "RESTIC_PASSWORD"


class CredentialContext:
    """Applies Location credentials to subprocess environments.

    Attributes:
        isolated: If True, scoped() yields private environment maps instead
            of mutating the bound environment.

    """

    def __init__(
        self,
        environ: MutableMapping[str, str] | None = None,
        *,
        isolated: bool = True,
    ) -> None:
        """Initialize the context.

        Args:
            environ: Environment mapping to base child environments on and
                to mutate in global mode. Defaults to os.environ.
            isolated: Use private environment maps (see module docstring).

        """
        self._environ = os.environ if environ is None else environ
        self.isolated = isolated
        self._lock = threading.RLock()

    @staticmethod
    def variables(location: Location) -> dict[str, str]:
        """Return the environment variables restic needs for a location.

        Args:
            location: Repository location.

        Returns:
            Variable name -> value, in application order.

        """
        variables = {
            REPOSITORY_ENV: location.path_or_bucket_name(),
            REPOSITORY_FILE_ENV: "",
            PASSWORD_ENV: location.password,
        }
        for credential in location.credentials:
            variables[credential.name] = credential.value
        return variables

    def apply(self, location: Location) -> None:
        """Write the location's variables into the bound environment.

        Idempotent: applying the same location twice has the same effect
        as applying it once.
        """
        with self._lock:
            for name, value in self.variables(location).items():
                self._environ[name] = value
        logger.debug("Applied credentials for %s", location.path_or_bucket_name())

    def clear(self, location: Location) -> None:
        """Blank every variable apply() sets for the location. Idempotent."""
        with self._lock:
            for name in self.variables(location):
                self._environ[name] = ""
        logger.debug("Cleared credentials for %s", location.path_or_bucket_name())

    def environment(self, location: Location) -> dict[str, str]:
        """Build a complete private environment for one restic invocation.

        Args:
            location: Repository location.

        Returns:
            Copy of the bound environment overlaid with the location's
            variables.

        """
        env = dict(self._environ)
        env.update(self.variables(location))
        return env

    @contextmanager
    def scoped(self, location: Location) -> Iterator[dict[str, str]]:
        """Provide the environment for exactly one restic invocation.

        In global mode the lock is held from apply() until clear() has run,
        so the whole invocation is atomic with respect to other operations
        using this context.

        Yields:
            The environment map to pass to the subprocess.

        """
        if self.isolated:
            yield self.environment(location)
            return

        with self._lock:
            self.apply(location)
            try:
                yield dict(self._environ)
            finally:
                self.clear(location)
