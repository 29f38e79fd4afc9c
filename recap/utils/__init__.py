"""Utility modules."""

from .ffmpeg import FFmpegRuntime
from .image_utils import DecodedImage, ImageLoader
from .transport import decode_data_url, encode_data_url

__all__ = ["FFmpegRuntime", "DecodedImage", "ImageLoader", "decode_data_url", "encode_data_url"]
