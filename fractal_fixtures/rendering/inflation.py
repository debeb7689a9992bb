"""
Size inflation ("noise busting").

Random bytes are appended after the encoded image's end-of-data marker so
the file reaches a target size window while decoding to exactly the same
pixels. The random tail also defeats transport-level compression of the
fixture.
"""

import numpy as np
from dataclasses import dataclass
import logging

from .image_output import ImageCodec, human_readable_size
from ..errors import EncodingFailure, SizeUnreachable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InflatedArtifact:
    """Encoded image followed by an opaque random tail."""
    data: bytes
    payload_length: int

    @property
    def payload(self) -> bytes:
        """The encoded image without the tail."""
        return self.data[:self.payload_length]

    @property
    def tail_length(self) -> int:
        return len(self.data) - self.payload_length

    def __len__(self) -> int:
        return len(self.data)


class SizeInflator:
    """Pads encoded images into a target size window."""

    def __init__(self, codec: ImageCodec, rng: np.random.Generator):
        """
        Initialize inflator.

        Args:
            codec: Codec that produced the images; used to locate the end marker
            rng: Generator owned by the calling job
        """
        self.codec = codec
        self.rng = rng

    def inflate(self, encoded: bytes, target_min: int, target_max: int) -> InflatedArtifact:
        """
        Append random bytes until the size lies in [target_min, target_max].

        Args:
            encoded: Encoded image ending exactly at its end marker
            target_min: Minimum artifact size in bytes
            target_max: Maximum artifact size in bytes

        Returns:
            InflatedArtifact whose payload is ``encoded``

        Raises:
            SizeUnreachable: if ``encoded`` is already larger than target_max
            EncodingFailure: if ``encoded`` carries data past its end marker
        """
        if not 0 < target_min <= target_max:
            raise ValueError(f"Invalid target window [{target_min}, {target_max}]")

        current = len(encoded)
        if current > target_max:
            raise SizeUnreachable(current, target_max)

        boundary = self.codec.end_of_data(encoded)
        if boundary != current:
            raise EncodingFailure(
                f"{current - boundary} bytes follow the {self.codec.name} end marker"
            )

        # Never shrink: the lower bound of the draw is the current size
        low = max(current, target_min)
        target = int(self.rng.integers(low, target_max, endpoint=True))
        tail = self.rng.bytes(target - current)

        logger.debug(f"Appending {len(tail)} bytes of noise "
                     f"({human_readable_size(current)} -> {human_readable_size(target)})")
        return InflatedArtifact(data=encoded + tail, payload_length=current)
