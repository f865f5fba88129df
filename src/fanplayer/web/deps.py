from fastapi import Request

from fanplayer.domain.playback.engine import PlaybackEngine


def get_engine(request: Request) -> PlaybackEngine:
    """FastAPI dependency for the playback engine."""
    return request.app.state.engine
