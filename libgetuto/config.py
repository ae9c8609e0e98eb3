# SPDX-License-Identifier: GPL-3.0-or-later

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from pathlib import Path
from typing import Callable
from typing import List
from typing import Mapping

KEYRING_PATH = Path("etc/portage/gnupg")
RELEASE_KEYS_PATH = Path("usr/share/openpgp-keys/gentoo-release.asc")
KEYSERVERS = ["hkps://keys.gentoo.org", "hkps://keys.openpgp.org"]
WKD_IDENTITIES = ["infrastructure@gentoo.org", "repomirrorci@gentoo.org", "releng@gentoo.org"]
STALE_AFTER = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class Config:
    """Settings of a single run, resolved once from the command line and the environment

    Attributes
    ----------
    root: The alternate filesystem root prefix everything else is resolved below
    keyring: The keyring directory holding all trust store state
    release_keys: The bundle of distribution release keys to import
    keyservers: Keyservers used to fetch and refresh the release keys
    wkd_identities: Maintainer identities looked up via the web key directory
    quiet: Whether to suppress progress output
    debug: Whether to trace every external command
    stale_after: Age of the last run after which the keyring is refreshed
    clock: Callable returning the current time as timezone aware datetime
    """

    root: Path
    keyring: Path
    release_keys: Path
    keyservers: List[str] = field(default_factory=lambda: list(KEYSERVERS))
    wkd_identities: List[str] = field(default_factory=lambda: list(WKD_IDENTITIES))
    quiet: bool = True
    debug: bool = False
    stale_after: timedelta = STALE_AFTER
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def from_root(cls, root: Path, quiet: bool = True, debug: bool = False) -> "Config":
        return cls(
            root=root,
            keyring=root / KEYRING_PATH,
            release_keys=root / RELEASE_KEYS_PATH,
            quiet=quiet,
            debug=debug,
        )

    @classmethod
    def from_environment(cls, environ: Mapping[str, str], verbose: bool = False) -> "Config":
        """Create a configuration from environment variables

        Parameters
        ----------
        environ: The environment to read ROOT and GETUTO_DEBUG from
        verbose: Whether progress output is requested

        Returns
        -------
        The configuration of the run
        """

        return cls.from_root(
            root=Path(environ.get("ROOT") or "/"),
            quiet=not verbose,
            debug=bool(environ.get("GETUTO_DEBUG")),
        )

    @property
    def passphrase_file(self) -> Path:
        return self.keyring / "pass"

    @property
    def keyid_file(self) -> Path:
        return self.keyring / "mykeyid"

    @property
    def trustdb(self) -> Path:
        return self.keyring / "trustdb.gpg"

    @property
    def marker(self) -> Path:
        return self.keyring / ".getuto.last"
