"""Audio decoding."""

from setbreak.audio.decode import AudioDecoder, DecodedAudio

__all__ = ["AudioDecoder", "DecodedAudio"]
