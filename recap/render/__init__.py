from recap.render.audio_mixer import AudioMixer, AudioTrackHandle
from recap.render.compositor import RasterSurface, allocate_surface, compute_placement, fade_opacity
from recap.render.encoder import (
    WEBM_BASIC,
    WEBM_PREFERENCES,
    CodecProfile,
    FFmpegEncoderSession,
    negotiate_codec,
)
from recap.render.timeline import TimelineConfig, TimelineDriver

__all__ = [
    "AudioMixer",
    "AudioTrackHandle",
    "RasterSurface",
    "allocate_surface",
    "compute_placement",
    "fade_opacity",
    "CodecProfile",
    "FFmpegEncoderSession",
    "WEBM_BASIC",
    "WEBM_PREFERENCES",
    "negotiate_codec",
    "TimelineConfig",
    "TimelineDriver",
]
