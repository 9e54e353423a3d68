"""Transcoding module for media validation and rendition encoding.

Validates staged uploads with ffprobe and encodes them into the configured
quality renditions plus a thumbnail with ffmpeg.
"""
