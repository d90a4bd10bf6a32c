"""Decoder dispatch: turn an audio file into a float PCM buffer.

Most formats are read in-process through libsndfile (soundfile). Formats
libsndfile cannot read are transcoded to a 16-bit PCM WAV with an external
ffmpeg-compatible tool and then read the same way.
"""

import itertools
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import soundfile as sf
import structlog

from setbreak.config import Settings
from setbreak.errors import (
    NativeDecodeError,
    TranscodeError,
    TranscoderNotFoundError,
    UnsupportedFormatError,
)

log = structlog.get_logger()

# Read directly with libsndfile
NATIVE_EXTENSIONS = {".wav", ".flac", ".ogg", ".oga", ".aif", ".aiff", ".mp3"}

# Transcoded to WAV first
TRANSCODE_EXTENSIONS = {".shn", ".ape", ".wv", ".m4a", ".aac", ".opus", ".wma", ".dsf", ".dff"}

SUPPORTED_EXTENSIONS = NATIVE_EXTENSIONS | TRANSCODE_EXTENSIONS

_temp_counter = itertools.count()
_temp_lock = threading.Lock()


@dataclass
class DecodedAudio:
    """Decoded PCM samples, shape (frames, channels), float32 in about [-1, 1]."""

    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.samples.shape[0] / self.sample_rate

    def mono(self) -> np.ndarray:
        """Average all channels into a single 1-D signal."""
        if self.channels == 1:
            return self.samples[:, 0]
        return self.samples.mean(axis=1)


def _next_temp_path(temp_dir: Path) -> Path:
    # pid separates processes, the counter separates workers in this one
    with _temp_lock:
        n = next(_temp_counter)
    return temp_dir / f"setbreak_{os.getpid()}_{n}.wav"


class AudioDecoder:
    """Routes a file to the right decode strategy by its extension."""

    def __init__(self, settings: Settings) -> None:
        self.transcoder = settings.transcoder
        self.temp_dir = settings.temp_dir

    def decode(self, path: Path) -> DecodedAudio:
        """Decode an audio file.

        Raises:
            UnsupportedFormatError: Extension is not handled.
            NativeDecodeError: libsndfile could not read the file.
            TranscoderNotFoundError: The transcoding tool is not installed.
            TranscodeError: The transcoding tool exited non-zero.
        """
        ext = path.suffix.lower()
        if ext == ".flac":
            return self._read_flac(path)
        if ext in NATIVE_EXTENSIONS:
            return self._read_native(path)
        if ext in TRANSCODE_EXTENSIONS:
            return self._transcode(path)
        raise UnsupportedFormatError(ext)

    def _read_native(self, path: Path) -> DecodedAudio:
        try:
            samples, sample_rate = sf.read(str(path), dtype="float32", always_2d=True)
        except (sf.SoundFileError, RuntimeError, OSError) as e:
            raise NativeDecodeError(f"{path.name}: {e}") from e
        return DecodedAudio(samples=samples, sample_rate=int(sample_rate))

    def _read_flac(self, path: Path) -> DecodedAudio:
        """Read FLAC as integer PCM and rescale.

        libsndfile's float conversion is unreliable for some 24-bit FLAC
        layouts, while the int32 path is exact for every bit depth.
        """
        try:
            raw, sample_rate = sf.read(str(path), dtype="int32", always_2d=True)
        except (sf.SoundFileError, RuntimeError, OSError) as e:
            raise NativeDecodeError(f"{path.name}: {e}") from e
        samples = (raw / float(2**31)).astype(np.float32)
        return DecodedAudio(samples=samples, sample_rate=int(sample_rate))

    def _transcode(self, path: Path) -> DecodedAudio:
        """Convert to a temporary 16-bit WAV with the transcoder, then read it."""
        self._check_transcoder()

        tmp_wav = _next_temp_path(self.temp_dir)
        cmd = [
            self.transcoder,
            "-i", str(path),
            "-f", "wav",
            "-acodec", "pcm_s16le",
            "-y",
            str(tmp_wav),
        ]
        log.debug("transcode_start", path=str(path), output=str(tmp_wav))

        try:
            try:
                result = subprocess.run(cmd, capture_output=True)
            except FileNotFoundError as e:
                raise TranscoderNotFoundError(self.transcoder) from e

            if result.returncode != 0:
                stderr = result.stderr.decode("utf-8", errors="replace")
                raise TranscodeError(self.transcoder, result.returncode, stderr)

            return self._read_native(tmp_wav)
        finally:
            tmp_wav.unlink(missing_ok=True)

    def _check_transcoder(self) -> None:
        try:
            subprocess.run([self.transcoder, "-version"], capture_output=True)
        except FileNotFoundError as e:
            raise TranscoderNotFoundError(self.transcoder) from e
