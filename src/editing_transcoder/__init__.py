"""editing-transcoder - Batch transcode footage into editing-friendly formats."""

__version__ = "0.3.0"
