"""Turning uploaded chunks into per-participant tracks and a meeting mix."""

from .ffmpeg import FFmpegError, FFmpegRunner
from .pipeline import MergeError, MergePipeline, MixError, StorageSetupError
from .scheduler import MergeScheduler, SubprocessMergeRunner

__all__ = [
    'FFmpegError',
    'FFmpegRunner',
    'MergeError',
    'MergePipeline',
    'MixError',
    'StorageSetupError',
    'MergeScheduler',
    'SubprocessMergeRunner',
]
