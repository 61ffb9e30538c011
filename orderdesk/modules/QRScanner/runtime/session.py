"""One camera-backed decode attempt and the handles it exclusively owns."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Optional

from .decoder import FrameDecoder
from .media import MediaStream

_session_ids = itertools.count(1)


@dataclass(slots=True, eq=False)
class AcquisitionSession:
    """Decoder plus the raw stream it reads from.

    The stream handle is kept alongside the decoder so teardown can stop the
    hardware tracks even when the decoder's own stop path fails.
    """

    decoder: Optional[FrameDecoder] = None
    stream: Optional[MediaStream] = None
    active: bool = False
    session_id: int = field(default_factory=lambda: next(_session_ids))

    def detach(self) -> tuple[Optional[FrameDecoder], Optional[MediaStream]]:
        """Hand the handles to the caller and leave the session empty and inactive."""
        decoder, stream = self.decoder, self.stream
        self.decoder = None
        self.stream = None
        self.active = False
        return decoder, stream

    @property
    def live_track_count(self) -> int:
        if self.stream is None:
            return 0
        return sum(1 for track in self.stream.get_tracks() if track.live)


__all__ = ["AcquisitionSession"]
