"""
PCM decoding for the spectrum tap, using ffmpeg.
"""

import logging
from pathlib import Path
from typing import Union

import ffmpeg
import numpy as np

from shared.constants import PCM_SAMPLE_RATE
from shared.errors import PlaybackError

logger = logging.getLogger(__name__)


class PcmDecoder:
    """Decodes an audio file into mono float32 samples."""

    def __init__(self, sample_rate: int = PCM_SAMPLE_RATE):
        self.sample_rate = sample_rate

    def decode(self, path: Union[str, Path]) -> np.ndarray:
        """
        Decode a whole file.

        Raises:
            PlaybackError: If ffmpeg cannot read the file
        """
        try:
            out, _ = (
                ffmpeg
                .input(str(path))
                .output('pipe:', format='f32le', acodec='pcm_f32le', ac=1, ar=self.sample_rate)
                .run(capture_stdout=True, capture_stderr=True, quiet=True)
            )
        except ffmpeg.Error as e:
            stderr = e.stderr.decode(errors='replace').strip() if e.stderr else str(e)
            raise PlaybackError(f"Cannot decode {path}: {stderr.splitlines()[-1] if stderr else e}")
        except FileNotFoundError as e:
            # ffmpeg binary missing
            raise PlaybackError(f"ffmpeg is not installed: {e}")

        samples = np.frombuffer(out, dtype=np.float32)
        logger.debug("Decoded %s: %.1fs", path, samples.size / self.sample_rate)
        return samples
