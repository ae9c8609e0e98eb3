# SPDX-License-Identifier: GPL-3.0-or-later

from argparse import ArgumentParser
from logging import DEBUG
from logging import INFO
from logging import WARNING
from logging import basicConfig
from logging import error
from os import environ
from os import geteuid
from subprocess import CalledProcessError
from sys import exit
from typing import List
from typing import Optional

from .config import Config
from .exceptions import GetutoError
from .exceptions import NotRootError
from .keyring import TrustStoreManager
from .util import decode_output

parser = ArgumentParser(
    prog="getuto",
    description="Set up and refresh the OpenPGP keyring used by Portage to verify binary packages",
)
parser.add_argument("-v", "--verbose", action="store_true", help="report the progress of every step")


def log_level(config: Config) -> int:
    if config.debug:
        return DEBUG
    if config.quiet:
        return WARNING
    return INFO


def check_privileges() -> None:
    if geteuid() != 0:
        raise NotRootError()


def main(argv: Optional[List[str]] = None) -> None:
    args = parser.parse_args(argv)
    config = Config.from_environment(environ, verbose=args.verbose)
    basicConfig(format="%(levelname)s: %(message)s", level=log_level(config), force=True)

    try:
        check_privileges()
        TrustStoreManager(config).run()
    except GetutoError as e:
        error(str(e))
        exit(e.exit_status)
    except CalledProcessError as e:
        error(f"{' '.join(e.cmd)} failed with exit status {e.returncode}")
        output = (decode_output(e.output) + decode_output(e.stderr)).rstrip()
        if output:
            error(output)
        exit(e.returncode)
