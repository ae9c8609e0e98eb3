# SPDX-License-Identifier: GPL-3.0-or-later

from enum import Enum
from enum import auto
from typing import NewType

Fingerprint = NewType("Fingerprint", str)


class KeyringState(Enum):
    nonexistent = auto()
    fresh = auto()
    stale = auto()
