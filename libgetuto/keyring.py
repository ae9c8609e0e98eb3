# SPDX-License-Identifier: GPL-3.0-or-later

from base64 import b64encode
from datetime import datetime
from datetime import timezone
from logging import debug
from logging import info
from os import utime
from pathlib import Path
from secrets import token_bytes
from stat import S_IRGRP
from stat import S_IROTH
from stat import S_IRUSR
from subprocess import CalledProcessError
from typing import List

from .config import Config
from .exceptions import MissingReleaseKeysError
from .gnupg import check_trustdb
from .gnupg import import_keys
from .gnupg import key_generate
from .gnupg import kill_daemons
from .gnupg import list_fingerprints
from .gnupg import locate_keys
from .gnupg import lsign_key_interactive
from .gnupg import quick_lsign_key
from .gnupg import receive_keys
from .gnupg import refresh_keys
from .gnupg import secret_key_fingerprint
from .gnupg import write_config
from .types import Fingerprint
from .types import KeyringState
from .util import add_mode
from .util import best_effort
from .util import write_private_file

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def generate_passphrase() -> str:
    """Generate a random passphrase from 32 random bytes, base64 encoded"""
    return b64encode(token_bytes(32)).decode()


class TrustStoreManager:
    """Bootstraps and refreshes the keyring used to verify binary packages

    Parameters
    ----------
    config: The configuration of the run
    """

    def __init__(self, config: Config) -> None:
        self.config = config

    @property
    def keyring(self) -> Path:
        return self.config.keyring

    def last_run(self) -> datetime:
        """Timestamp of the last successful run, the epoch if there never was one"""
        try:
            return datetime.fromtimestamp(self.config.marker.stat().st_mtime, tz=timezone.utc)
        except FileNotFoundError:
            return EPOCH

    def state(self) -> KeyringState:
        if not self.keyring.exists():
            return KeyringState.nonexistent
        if self.config.clock() - self.last_run() >= self.config.stale_after:
            return KeyringState.stale
        return KeyringState.fresh

    def stamp(self) -> None:
        """Set the last run marker to the current time, never moving it backwards"""
        now = max(self.config.clock(), self.last_run())
        self.config.marker.touch(exist_ok=True)
        utime(self.config.marker, (now.timestamp(), now.timestamp()))
        debug(f"Stamped {self.config.marker} with {now.isoformat()}")

    def finalize_permissions(self) -> None:
        """Make the trust database readable by the unprivileged package manager"""
        if self.config.trustdb.exists():
            add_mode(self.config.trustdb, S_IRUSR | S_IRGRP | S_IROTH)

    def kill_daemons(self) -> None:
        if not self.keyring.exists():
            return
        failure = best_effort(kill_daemons, homedir=self.keyring)
        if failure:
            debug(f"Could not stop gpg-agent and dirmngr: exit status {failure.returncode}")

    def import_release_keys(self) -> None:
        """Import the bundled release keys

        Raises
        ------
        MissingReleaseKeysError: If the release key bundle does not exist
        CalledProcessError: If gpg fails to import the bundle
        """

        if not self.config.release_keys.exists():
            raise MissingReleaseKeysError(self.config.release_keys)
        info(f"Importing release keys from {self.config.release_keys}")
        import_keys(homedir=self.keyring, keyfile=self.config.release_keys)

    def fetch_from_keyservers(self, fingerprints: List[Fingerprint]) -> None:
        for keyserver in self.config.keyservers:
            info(f"Fetching release keys from {keyserver}")
            failure = best_effort(receive_keys, homedir=self.keyring, keyserver=keyserver, fingerprints=fingerprints)
            if failure:
                info(f"Could not fetch release keys from {keyserver}, continuing")

    def refresh_from_keyservers(self) -> None:
        for keyserver in self.config.keyservers:
            info(f"Refreshing keys from {keyserver}")
            failure = best_effort(refresh_keys, homedir=self.keyring, keyserver=keyserver)
            if failure:
                info(f"Could not refresh keys from {keyserver}, continuing")

    def locate_maintainer_keys(self) -> None:
        if not self.config.wkd_identities:
            return
        info("Locating maintainer keys in the web key directory")
        failure = best_effort(locate_keys, homedir=self.keyring, identities=self.config.wkd_identities)
        if failure:
            info("Could not locate maintainer keys, continuing")

    def lsign(self, signer: Fingerprint, fingerprint: Fingerprint) -> None:
        """Locally sign a key with the local trust key

        --quick-lsign-key is tried first and, only if gpg fails with it, the scripted --lsign-key variant.

        Parameters
        ----------
        signer: The fingerprint of the local trust key
        fingerprint: The fingerprint of the key to sign

        Raises
        ------
        CalledProcessError: If both variants fail
        """

        info(f"Locally signing {fingerprint}")
        try:
            quick_lsign_key(
                homedir=self.keyring,
                signer=signer,
                passphrase_file=self.config.passphrase_file,
                fingerprint=fingerprint,
            )
        except CalledProcessError as e:
            debug(f"--quick-lsign-key failed with exit status {e.returncode}, retrying with --lsign-key")
            lsign_key_interactive(
                homedir=self.keyring,
                signer=signer,
                passphrase_file=self.config.passphrase_file,
                fingerprint=fingerprint,
            )

    def bootstrap(self) -> None:
        """Create the keyring, generate the local trust key and trust all release keys with it

        Raises
        ------
        MissingReleaseKeysError: If the release key bundle does not exist
        CalledProcessError: If any mandatory gpg invocation fails
        """

        if not self.config.release_keys.exists():
            raise MissingReleaseKeysError(self.config.release_keys)

        info(f"Creating keyring in {self.keyring}")
        self.keyring.mkdir(mode=0o755, parents=True)
        self.keyring.chmod(0o755)
        write_config(homedir=self.keyring)

        info("Generating local trust key")
        passphrase = generate_passphrase()
        key_generate(homedir=self.keyring, passphrase=passphrase)
        write_private_file(self.config.passphrase_file, f"{passphrase}\n")

        local_key = secret_key_fingerprint(homedir=self.keyring)
        self.config.keyid_file.write_text(f"{local_key}\n")
        debug(f"Local trust key is {local_key}")

        self.import_release_keys()
        release_keys = [
            fingerprint for fingerprint in list_fingerprints(homedir=self.keyring) if fingerprint != local_key
        ]
        debug(f"Release keys: {release_keys}")

        self.fetch_from_keyservers(fingerprints=release_keys)
        self.locate_maintainer_keys()

        for fingerprint in release_keys:
            self.lsign(signer=local_key, fingerprint=fingerprint)

        info("Checking trust database")
        check_trustdb(homedir=self.keyring)
        self.finalize_permissions()
        self.stamp()

    def refresh_if_stale(self) -> bool:
        """Refresh the release keys if the last run is older than the configured threshold

        Raises
        ------
        MissingReleaseKeysError: If the release key bundle does not exist
        CalledProcessError: If gpg fails to import the release key bundle

        Returns
        -------
        Whether the keyring has been refreshed
        """

        if self.state() != KeyringState.stale:
            info(f"Keyring {self.keyring} is already up to date")
            return False

        # revocations and renewals shipped with the bundle apply even without keyserver access
        self.import_release_keys()
        self.refresh_from_keyservers()
        self.locate_maintainer_keys()
        self.stamp()
        return True

    def run(self) -> KeyringState:
        """Bring the keyring into the fresh state, bootstrapping or refreshing it as needed

        Returns
        -------
        The state of the keyring before the run
        """

        state = self.state()
        debug(f"Keyring {self.keyring} is {state.name}")

        self.kill_daemons()
        try:
            if state == KeyringState.nonexistent:
                self.bootstrap()
            else:
                self.refresh_if_stale()
        finally:
            if self.keyring.exists():
                self.finalize_permissions()
                self.kill_daemons()

        return state
