"""Player router for playback control and live state."""

import time

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from loguru import logger

from fanplayer.domain.playback.engine import PlaybackEngine
from fanplayer.domain.playback.exceptions import NoPlaybackMethodError, PlaybackError

from ..deps import get_engine
from ..schemas import (
    PlayRequest,
    QueueRequest,
    SeekRequest,
    VolumeRequest,
    serialize_snapshot,
)

router = APIRouter()


def _state(engine: PlaybackEngine) -> dict:
    return serialize_snapshot(engine.snapshot())


def _playback_http_error(e: PlaybackError) -> HTTPException:
    """Map a track-level play failure to an HTTP error for the UI."""
    if isinstance(e, NoPlaybackMethodError):
        return HTTPException(409, str(e))
    return HTTPException(502, str(e))


@router.get("/state")
async def get_state(engine: PlaybackEngine = Depends(get_engine)):
    """Get current playback state."""
    return _state(engine)


@router.post("/play")
async def play(request: PlayRequest, engine: PlaybackEngine = Depends(get_engine)):
    """Play a track, loading the given queue around it if provided."""
    track = request.track.to_track()

    try:
        if request.queue:
            tracks = [t.to_track() for t in request.queue]
            index = next((i for i, t in enumerate(tracks) if t.id == track.id), -1)
            if index < 0:
                raise HTTPException(400, "Track is not in the queue")
            await engine.play_from_queue(tracks, index)
        else:
            await engine.play_track(track)
    except PlaybackError as e:
        logger.warning(f"Play failed for {track.title}: {e}")
        raise _playback_http_error(e)

    return _state(engine)


@router.put("/queue")
async def set_queue(request: QueueRequest, engine: PlaybackEngine = Depends(get_engine)):
    """Replace the queue (clears shuffle)."""
    engine.set_queue([t.to_track() for t in request.tracks])
    return _state(engine)


@router.post("/pause")
async def pause(engine: PlaybackEngine = Depends(get_engine)):
    await engine.pause()
    return _state(engine)


@router.post("/resume")
async def resume(engine: PlaybackEngine = Depends(get_engine)):
    if engine.current_track is None:
        raise HTTPException(400, "No track to resume")
    await engine.resume()
    return _state(engine)


@router.post("/toggle")
async def toggle_play_pause(engine: PlaybackEngine = Depends(get_engine)):
    await engine.toggle_play_pause()
    return _state(engine)


@router.post("/next")
async def next_track(engine: PlaybackEngine = Depends(get_engine)):
    """Skip to the next track."""
    try:
        await engine.next()
    except PlaybackError as e:
        raise _playback_http_error(e)
    return _state(engine)


@router.post("/prev")
async def prev_track(engine: PlaybackEngine = Depends(get_engine)):
    """Go back to the previous track (or restart the first one)."""
    try:
        await engine.previous()
    except PlaybackError as e:
        raise _playback_http_error(e)
    return _state(engine)


@router.post("/seek")
async def seek(request: SeekRequest, engine: PlaybackEngine = Depends(get_engine)):
    """Seek to position in current track."""
    if engine.current_track is None:
        raise HTTPException(400, "No track playing")
    await engine.seek(request.position_ms)
    return _state(engine)


@router.post("/volume")
async def set_volume(request: VolumeRequest, engine: PlaybackEngine = Depends(get_engine)):
    await engine.set_volume(request.volume)
    return _state(engine)


@router.post("/toggle-shuffle")
async def toggle_shuffle(engine: PlaybackEngine = Depends(get_engine)):
    await engine.toggle_shuffle()
    return _state(engine)


@router.post("/toggle-repeat")
async def toggle_repeat(engine: PlaybackEngine = Depends(get_engine)):
    await engine.toggle_repeat()
    return _state(engine)


@router.websocket("/live")
async def live(websocket: WebSocket):
    """WebSocket endpoint pushing playback state on every change."""
    sync_manager = websocket.app.state.sync_manager
    engine = websocket.app.state.engine
    await sync_manager.connect(websocket)

    try:
        # Send current state immediately
        await websocket.send_json({
            "type": "playback:state",
            "data": _state(engine),
            "ts": time.time(),
        })

        # Clients only listen; drain anything they send
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        sync_manager.disconnect(websocket)
