from datetime import datetime
from datetime import timezone
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Dict
from typing import Generator
from unittest.mock import DEFAULT
from unittest.mock import Mock
from unittest.mock import patch

from pytest import fixture

from libgetuto.config import Config
from libgetuto.gnupg import gpg
from libgetuto.gnupg import kill_daemons
from libgetuto.gnupg import list_fingerprints
from libgetuto.types import Fingerprint
from libgetuto.util import best_effort
from libgetuto.util import system

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
LOCAL_KEY = Fingerprint("0123456789ABCDEF0123456789ABCDEF01234567")
RELEASE_KEYS = [
    Fingerprint("13EBBDBEDE7A12775DFDB1BABB572E0E2D182910"),
    Fingerprint("534E4209AB49EEE1C19D96162C44695DB9F6043D"),
]


@fixture(scope="function")
def working_dir() -> Generator[Path, None, None]:
    with TemporaryDirectory(prefix="getuto-test-") as tempdir:
        yield Path(tempdir)


@fixture(scope="function")
def config(working_dir: Path) -> Config:
    config = Config.from_root(root=working_dir)
    config.clock = lambda: NOW
    config.release_keys.parent.mkdir(parents=True)
    config.release_keys.write_text("-----BEGIN PGP PUBLIC KEY BLOCK-----\n")
    return config


@fixture(scope="function")
def keyring_dir(config: Config) -> Path:
    config.keyring.mkdir(parents=True)
    return config.keyring


@fixture(scope="function")
def gnupg_mock(config: Config) -> Generator[Dict[str, Mock], None, None]:
    def create_trustdb(homedir: Path) -> str:
        trustdb = homedir / "trustdb.gpg"
        trustdb.touch()
        trustdb.chmod(0o600)
        return ""

    with patch.multiple(
        "libgetuto.keyring",
        check_trustdb=DEFAULT,
        import_keys=DEFAULT,
        key_generate=DEFAULT,
        kill_daemons=DEFAULT,
        list_fingerprints=DEFAULT,
        locate_keys=DEFAULT,
        lsign_key_interactive=DEFAULT,
        quick_lsign_key=DEFAULT,
        receive_keys=DEFAULT,
        refresh_keys=DEFAULT,
        secret_key_fingerprint=DEFAULT,
    ) as mocks:
        mocks["secret_key_fingerprint"].return_value = LOCAL_KEY
        mocks["list_fingerprints"].return_value = [LOCAL_KEY, *RELEASE_KEYS]
        mocks["check_trustdb"].side_effect = create_trustdb
        yield mocks


def generate_release_key(homedir: Path, uid: str) -> Fingerprint:
    homedir.mkdir(mode=0o700, parents=True, exist_ok=True)
    system(
        gpg(
            homedir,
            "--batch",
            "--pinentry-mode",
            "loopback",
            "--passphrase",
            "",
            "--quick-generate-key",
            uid,
            "rsa2048",
            "sign",
            "never",
        )
    )
    return list_fingerprints(homedir=homedir)[-1]


def export_key(homedir: Path, fingerprint: Fingerprint, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(system(gpg(homedir, "--batch", "--armor", "--export", fingerprint), merge_stderr=False))


@fixture(scope="function")
def release_home(working_dir: Path) -> Generator[Path, None, None]:
    homedir = working_dir / "release"
    try:
        yield homedir
    finally:
        if homedir.exists():
            best_effort(kill_daemons, homedir=homedir)


@fixture(scope="function")
def gpg_config(working_dir: Path) -> Generator[Config, None, None]:
    config = Config.from_root(root=working_dir / "root")
    config.keyservers = ["hkp://127.0.0.1:1"]
    config.wkd_identities = []
    with patch.dict("os.environ", {"http_proxy": "", "https_proxy": ""}):
        try:
            yield config
        finally:
            if config.keyring.exists():
                best_effort(kill_daemons, homedir=config.keyring)
