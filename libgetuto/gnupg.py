# SPDX-License-Identifier: GPL-3.0-or-later

from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Iterable
from typing import List
from typing import Optional

from .types import Fingerprint
from .util import system

GPG = "gpg"
GPGCONF = "gpgconf"

DIRMNGR_CONF = """honor-http-proxy
no-use-tor
resolver-timeout 180
connect-timeout 180
"""
GPG_AGENT_CONF = "disable-scdaemon\n"
GPG_CONF = "no-greeting\n"

# answers to "Really sign all user IDs?" and "Really sign?"
LSIGN_ANSWERS = b"y\ny\n"


def gpg(homedir: Path, *args: str) -> List[str]:
    return [GPG, "--homedir", str(homedir), *args]


def write_config(homedir: Path) -> None:
    """Write the configuration files of gpg and its helper daemons

    Parameters
    ----------
    homedir: The gpg home directory to write the configuration to
    """

    (homedir / "dirmngr.conf").write_text(DIRMNGR_CONF)
    (homedir / "gpg-agent.conf").write_text(GPG_AGENT_CONF)
    (homedir / "gpg.conf").write_text(GPG_CONF)


def key_parameters(passphrase: str) -> str:
    """Unattended key generation parameters of the local trust key

    Parameters
    ----------
    passphrase: The passphrase protecting the generated key

    Returns
    -------
    The parameter file content understood by `gpg --generate-key`
    """

    return (
        "%echo Generating Portage local OpenPGP trust key\n"
        "Key-Type: RSA\n"
        "Key-Length: 3072\n"
        "Key-Usage: sign,cert\n"
        "Subkey-Type: RSA\n"
        "Subkey-Length: 3072\n"
        "Subkey-Usage: encrypt\n"
        "Name-Real: Portage Local Trust Key\n"
        "Name-Comment: local signing only\n"
        "Name-Email: portage@localhost\n"
        "Expire-Date: 0\n"
        f"Passphrase: {passphrase}\n"
        "%commit\n"
        "%echo done\n"
    )


def key_generate(homedir: Path, passphrase: str) -> str:
    """Generate a key pair without interaction

    The parameters, including the passphrase, are handed to gpg through a temporary file readable by its owner only,
    which is removed as soon as gpg returns.

    Parameters
    ----------
    homedir: The gpg home directory to generate the key in
    passphrase: The passphrase protecting the generated key

    Returns
    -------
    The output of gpg
    """

    with NamedTemporaryFile(mode="w", dir=homedir, prefix="getuto-", suffix=".params") as parameters:
        parameters.write(key_parameters(passphrase=passphrase))
        parameters.flush()
        return system(gpg(homedir, "--batch", "--generate-key", parameters.name))


def parse_fingerprints(listing: str, record: str) -> List[Fingerprint]:
    """Parse the fingerprints of primary keys from a colon delimited key listing

    Parameters
    ----------
    listing: The output of gpg --with-colons
    record: The record type of primary keys ("pub" or "sec")

    Returns
    -------
    The fingerprints of all primary keys in order of appearance
    """

    fingerprints: List[Fingerprint] = []
    previous: Optional[str] = None
    for line in listing.splitlines():
        fields = line.split(":")
        if fields[0] == "fpr" and previous == record and len(fields) > 9:
            fingerprints.append(Fingerprint(fields[9]))
        previous = fields[0]
    return fingerprints


def secret_key_fingerprint(homedir: Path) -> Fingerprint:
    """Get the fingerprint of the first secret key of a keyring

    Parameters
    ----------
    homedir: The gpg home directory to list

    Raises
    ------
    Exception: If the keyring holds no secret key

    Returns
    -------
    The fingerprint of the secret key
    """

    listing = system(gpg(homedir, "--batch", "--with-colons", "--list-secret-keys"), merge_stderr=False)
    fingerprints = parse_fingerprints(listing=listing, record="sec")
    if not fingerprints:
        raise Exception(f"no secret key found in {homedir}")
    return fingerprints[0]


def list_fingerprints(homedir: Path) -> List[Fingerprint]:
    listing = system(gpg(homedir, "--batch", "--with-colons", "--list-keys"), merge_stderr=False)
    return parse_fingerprints(listing=listing, record="pub")


def import_keys(homedir: Path, keyfile: Path) -> str:
    return system(gpg(homedir, "--batch", "--import", str(keyfile)))


def receive_keys(homedir: Path, keyserver: str, fingerprints: Iterable[Fingerprint]) -> str:
    return system(gpg(homedir, "--batch", "--keyserver", keyserver, "--recv-keys", *fingerprints))


def refresh_keys(homedir: Path, keyserver: str) -> str:
    return system(gpg(homedir, "--batch", "--keyserver", keyserver, "--refresh-keys"))


def locate_keys(homedir: Path, identities: Iterable[str]) -> str:
    """Look up keys of identities in their web key directory

    Parameters
    ----------
    homedir: The gpg home directory to import located keys into
    identities: Mail addresses to locate the keys of

    Returns
    -------
    The output of gpg
    """

    return system(gpg(homedir, "--batch", "--auto-key-locate", "clear,nodefault,wkd", "--locate-keys", *identities))


def quick_lsign_key(homedir: Path, signer: Fingerprint, passphrase_file: Path, fingerprint: Fingerprint) -> str:
    """Locally sign a key using --quick-lsign-key

    Parameters
    ----------
    homedir: The gpg home directory holding both keys
    signer: The fingerprint of the local key to sign with
    passphrase_file: The file holding the passphrase of the signer
    fingerprint: The fingerprint of the key to sign

    Returns
    -------
    The output of gpg
    """

    return system(
        gpg(
            homedir,
            "--batch",
            "--yes",
            "--pinentry-mode",
            "loopback",
            "--passphrase-file",
            str(passphrase_file),
            "--local-user",
            signer,
            "--quick-lsign-key",
            fingerprint,
        )
    )


def lsign_key_interactive(homedir: Path, signer: Fingerprint, passphrase_file: Path, fingerprint: Fingerprint) -> str:
    """Locally sign a key using --lsign-key, answering its confirmation prompts on the command fd

    --quick-lsign-key fails on some keys (e.g. when only subkeys are usable), the interactive variant does not.

    Parameters
    ----------
    homedir: The gpg home directory holding both keys
    signer: The fingerprint of the local key to sign with
    passphrase_file: The file holding the passphrase of the signer
    fingerprint: The fingerprint of the key to sign

    Returns
    -------
    The output of gpg
    """

    return system(
        gpg(
            homedir,
            "--command-fd",
            "0",
            "--no-tty",
            "--yes",
            "--pinentry-mode",
            "loopback",
            "--passphrase-file",
            str(passphrase_file),
            "--local-user",
            signer,
            "--lsign-key",
            fingerprint,
        ),
        _stdin=LSIGN_ANSWERS,
    )


def check_trustdb(homedir: Path) -> str:
    return system(gpg(homedir, "--batch", "--check-trustdb"))


def kill_daemons(homedir: Path) -> str:
    """Stop all daemons gpg started for a home directory, gpg-agent and dirmngr alike"""
    return system([GPGCONF, "--homedir", str(homedir), "--kill", "all"])
