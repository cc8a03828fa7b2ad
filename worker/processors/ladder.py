"""
Rendition ladder presets and selection
"""
from typing import Dict, List

from worker.models import RenditionSpec


RENDITION_PRESETS: Dict[str, RenditionSpec] = {
    spec.label: spec for spec in (
        RenditionSpec(label="1440p", width=2560, height=1440, video_bitrate=8000,
                      max_bitrate=9000, buffer_size=12000, audio_bitrate=256,
                      quality=21, preset="p4"),
        RenditionSpec(label="1080p", width=1920, height=1080, video_bitrate=5500,
                      max_bitrate=6500, buffer_size=8500, audio_bitrate=192,
                      quality=22, preset="p4"),
        RenditionSpec(label="720p", width=1280, height=720, video_bitrate=3500,
                      max_bitrate=4000, buffer_size=5000, audio_bitrate=128,
                      quality=23, preset="p3"),
        RenditionSpec(label="480p", width=854, height=480, video_bitrate=1800,
                      max_bitrate=2200, buffer_size=2700, audio_bitrate=128,
                      quality=24, preset="p2"),
        RenditionSpec(label="360p", width=640, height=360, video_bitrate=1000,
                      max_bitrate=1300, buffer_size=1500, audio_bitrate=96,
                      quality=25, preset="p1"),
    )
}

FLOOR_LABEL = "360p"


def select_ladder(source_height: int) -> List[RenditionSpec]:
    """Return every tier not taller than the source, tallest first.

    Sources shorter than the smallest tier get the smallest tier alone.
    """
    tiers = sorted(RENDITION_PRESETS.values(), key=lambda spec: spec.height, reverse=True)
    ladder = [spec for spec in tiers if spec.height <= source_height]
    return ladder or [RENDITION_PRESETS[FLOOR_LABEL]]
