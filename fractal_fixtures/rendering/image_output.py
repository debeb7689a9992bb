"""
Image encoding and artifact output.

This module provides the codecs used to encode colored rasters, locates the
end-of-data boundary of each format, verifies once per process that a codec's
decoder ignores trailing bytes, and writes artifacts atomically.
"""

import numpy as np
from typing import Dict, Optional, Tuple
from pathlib import Path
from io import BytesIO
import logging
import os
import struct

from PIL import Image

from ..errors import ConfigurationError, EncodingFailure

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SOI = b"\xff\xd8"
JPEG_EOI = b"\xff\xd9"


class ImageCodec:
    """Base class for an encoder whose output has a well-defined end marker."""

    name = "base"
    extension = ""
    mime_type = "application/octet-stream"

    def encode(self, image_array: np.ndarray) -> bytes:
        """
        Encode an RGB image.

        Args:
            image_array: uint8 RGB array (height, width, 3)

        Returns:
            Encoded bytes
        """
        image_array = self._prepare_image_array(image_array)
        buffer = BytesIO()
        try:
            Image.fromarray(image_array).save(buffer, **self._save_options())
        except (OSError, ValueError) as e:
            raise EncodingFailure(f"{self.name} encoder rejected image: {e}") from e
        return buffer.getvalue()

    def decode(self, data: bytes) -> np.ndarray:
        """Decode bytes to a uint8 RGB array."""
        with Image.open(BytesIO(data)) as img:
            img.load()
            return np.asarray(img.convert('RGB'))

    def end_of_data(self, data: bytes) -> int:
        """Offset just past the format's end marker; raises EncodingFailure if absent."""
        raise NotImplementedError

    def _save_options(self) -> Dict:
        raise NotImplementedError

    def _prepare_image_array(self, image_array: np.ndarray) -> np.ndarray:
        """Prepare and validate image array for encoding."""
        if image_array.ndim != 3 or image_array.shape[2] != 3:
            raise EncodingFailure(f"Expected RGB image array (H, W, 3), got {image_array.shape}")
        if image_array.shape[0] == 0 or image_array.shape[1] == 0:
            raise EncodingFailure("Cannot encode an empty image")
        if image_array.dtype != np.uint8:
            image_array = np.clip(image_array, 0, 255).astype(np.uint8)
        return np.ascontiguousarray(image_array)


class PngCodec(ImageCodec):
    """PNG; decoders stop at the IEND chunk."""

    name = "png"
    extension = ".png"
    mime_type = "image/png"

    def __init__(self, compress_level: int = 6):
        if not 0 <= compress_level <= 9:
            raise ValueError("compress_level must be between 0 and 9")
        self.compress_level = compress_level

    def _save_options(self) -> Dict:
        return {'format': 'PNG', 'compress_level': self.compress_level}

    def end_of_data(self, data: bytes) -> int:
        """Walk the chunk list up to and including IEND."""
        if not data.startswith(PNG_SIGNATURE):
            raise EncodingFailure("PNG signature missing")

        offset = len(PNG_SIGNATURE)
        while offset + 8 <= len(data):
            length, chunk_type = struct.unpack(">I4s", data[offset:offset + 8])
            # length + type + payload + crc
            offset += 12 + length
            if chunk_type == b"IEND":
                if offset > len(data):
                    break
                return offset

        raise EncodingFailure("PNG stream has no complete IEND chunk")


class JpegCodec(ImageCodec):
    """Baseline JPEG; decoders stop at the EOI marker."""

    name = "jpeg"
    extension = ".jpg"
    mime_type = "image/jpeg"

    def __init__(self, quality: int = 95):
        if not 1 <= quality <= 100:
            raise ValueError("quality must be between 1 and 100")
        self.quality = quality

    def _save_options(self) -> Dict:
        return {'format': 'JPEG', 'quality': self.quality}

    def end_of_data(self, data: bytes) -> int:
        # Only called on freshly encoded streams, which end at EOI
        if not data.startswith(JPEG_SOI) or not data.endswith(JPEG_EOI):
            raise EncodingFailure("JPEG stream is not delimited by SOI/EOI markers")
        return len(data)


CODECS = {
    'png': PngCodec,
    'jpeg': JpegCodec,
    'jpg': JpegCodec,
}


def get_codec(name: str, **options) -> ImageCodec:
    """
    Create a codec by name.

    Args:
        name: Codec identifier ('png', 'jpeg')
        **options: Codec-specific options (compress_level, quality)

    Returns:
        Configured codec instance
    """
    codec_class = CODECS.get(name.lower())
    if codec_class is None:
        available = ', '.join(sorted(CODECS))
        raise ConfigurationError(f"Unknown image format '{name}'. Available: {available}")
    try:
        return codec_class(**options)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid options for {name} codec: {e}") from e


_verified_codecs = set()


def verify_trailing_tolerance(codec: ImageCodec, rng: Optional[np.random.Generator] = None,
                              tail_lengths: Tuple[int, ...] = (1, 97, 4096)) -> None:
    """
    Check that a codec's decoder ignores bytes appended after its end marker.

    A small gradient image is encoded, random tails (and a tail that starts
    with the format's own header bytes) are appended, and every decode must
    match the clean decode pixel for pixel. Results are cached per codec
    configuration, so the check runs once per process.

    Raises:
        ConfigurationError: if the codec corrupts or rejects padded streams
    """
    key = (type(codec), tuple(sorted(vars(codec).items())))
    if key in _verified_codecs:
        return

    rng = rng if rng is not None else np.random.default_rng(0)

    y, x = np.mgrid[0:24, 0:32]
    sample = np.stack([x * 8, y * 10, (x + y) * 4], axis=-1).astype(np.uint8)

    clean = codec.encode(sample)
    boundary = codec.end_of_data(clean)
    if boundary != len(clean):
        raise ConfigurationError(f"{codec.name} encoder wrote data past its end marker")
    reference = codec.decode(clean)

    tails = [rng.bytes(n) for n in tail_lengths]
    tails.append(clean[:64] + rng.bytes(64))

    for tail in tails:
        try:
            padded = codec.decode(clean + tail)
        except Exception as e:
            raise ConfigurationError(
                f"{codec.name} decoder rejects {len(tail)} trailing bytes: {e}"
            ) from e
        if padded.shape != reference.shape or not np.array_equal(padded, reference):
            raise ConfigurationError(
                f"{codec.name} decoder output changes with {len(tail)} trailing bytes"
            )

    _verified_codecs.add(key)
    logger.info(f"Verified {codec.name} codec tolerates trailing data")


def write_artifact(data: bytes, filepath: Path) -> Path:
    """
    Write bytes atomically: write to a ``.tmp`` sibling, then rename.

    A failed or interrupted write never leaves a file at ``filepath``.

    Args:
        data: Artifact bytes
        filepath: Final output path

    Returns:
        The final path
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    temp_path = filepath.with_name(filepath.name + '.tmp')

    try:
        with open(temp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, filepath)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise

    logger.debug(f"Wrote {len(data)} bytes to {filepath}")
    return filepath


def human_readable_size(num_bytes: int) -> str:
    """Format a byte count as KB/MB/GB."""
    for unit, factor in (('GB', 1024 ** 3), ('MB', 1024 ** 2), ('KB', 1024)):
        if num_bytes >= factor:
            return f"{num_bytes / factor:.2f} {unit}"
    return f"{num_bytes} bytes"
