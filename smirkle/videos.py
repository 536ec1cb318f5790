"""
Catalog of challenge videos and the "skip video" rotation.
"""
from __future__ import annotations
from typing import List, Optional
from urllib.parse import urlencode

from smirkle.models import VideoContent

VIDEO_URL_BASE = "https://www.youtube.com/embed"

SAMPLE_VIDEOS: List[VideoContent] = [
    VideoContent(id="1", youtube_id="dQw4w9WgXcQ", title="Funny Compilation 1",
                 description="Try not to laugh!", difficulty="easy", expected_duration=300),
    VideoContent(id="2", youtube_id="jNQXAC9IVRw", title="Me at the zoo",
                 description="Classic funny", difficulty="easy", expected_duration=180),
    VideoContent(id="3", youtube_id="9bZkp7q19f0", title="Gangnam Style",
                 description="Classic", difficulty="medium", expected_duration=240),
    VideoContent(id="4", youtube_id="fJ9rUzIMcZQ", title="Bohemian Rhapsody",
                 description="Epic", difficulty="medium", expected_duration=355),
    VideoContent(id="5", youtube_id="L_jWHffIx5E", title="Smells Like Teen Spirit",
                 description="Rock classics", difficulty="hard", expected_duration=300),
]


def default_video() -> str:
    return SAMPLE_VIDEOS[0].youtube_id


def next_video(current: Optional[str], videos: List[VideoContent] = SAMPLE_VIDEOS) -> str:
    """Next video in the rotation; unknown ids restart from the top."""
    ids = [v.youtube_id for v in videos]
    if current not in ids:
        return ids[0]
    return ids[(ids.index(current) + 1) % len(ids)]


def embed_url(video_id: str, autoplay: bool = True) -> str:
    params = urlencode({
        "autoplay": "1" if autoplay else "0",
        "mute": "1",
        "loop": "1",
        "playlist": video_id,
        "controls": "0",
        "rel": "0",
        "modestbranding": "1",
    })
    return f"{VIDEO_URL_BASE}/{video_id}?{params}"
