"""
Messages exchanged with the background detection host.

Requests flow caller → host, responses host → caller. Every request carries an id assigned
by the client; the matching response echoes it back so the client can resolve by id.
`None` on the request channel means "shut down".
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union
import numpy as np

from docscan.core.contracts import Corners, Frame
from docscan.core.errors import FailureReason


# --- caller → host ---

@dataclass(frozen=True)
class Detect:
    frame: Frame
    request_id: int = 0


@dataclass(frozen=True)
class DetectLive:
    frame: Frame
    request_id: int = 0


@dataclass(frozen=True)
class CropWithCorners:
    frame: Frame
    corners: Corners
    request_id: int = 0


DetectionRequest = Union[Detect, DetectLive, CropWithCorners]


# --- host → caller ---

@dataclass(frozen=True)
class Ready:
    pass


@dataclass(frozen=True)
class Error:
    message: str


@dataclass(frozen=True)
class Found:
    image: np.ndarray
    corners: Optional[Corners] = None
    debug: str = ""
    request_id: int = 0

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


@dataclass(frozen=True)
class FoundLive:
    corners: Corners
    debug: str = ""
    request_id: int = 0


@dataclass(frozen=True)
class Failed:
    reason: FailureReason
    debug: str = ""
    request_id: int = 0


DetectionResponse = Union[Ready, Failed, Found, FoundLive]
