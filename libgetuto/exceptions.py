# SPDX-License-Identifier: GPL-3.0-or-later

from pathlib import Path


class GetutoError(Exception):
    """Base class of fatal precondition failures, carrying the exit status of the process"""

    exit_status: int = 1


class NotRootError(GetutoError):
    exit_status = 100

    def __init__(self) -> None:
        super().__init__("This program needs to be run as root")


class MissingReleaseKeysError(GetutoError):
    exit_status = 1

    def __init__(self, path: Path) -> None:
        super().__init__(f"Cannot find {path}, is sec-keys/openpgp-keys-gentoo-release installed?")
        self.path = path
