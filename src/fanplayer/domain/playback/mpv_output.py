"""
MPV audio output for preview clips, driven over JSON IPC.

Implements the AudioOutput protocol: `src`/`current_time`/`volume` map to
mpv's loaded file, `time-pos` and `volume` properties, and a watcher task
turns `time-pos`/`eof-reached` polling into "timeupdate"/"ended" events.
"""

import asyncio
import json
import os
import socket
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .sdk import EVENT_ENDED, EVENT_ERROR, EVENT_TIME_UPDATE

# How often the watcher samples mpv (seconds)
WATCH_INTERVAL = 0.25

SOCKET_TIMEOUT = 5.0


def check_mpv_available() -> bool:
    """Check if MPV is available on the system."""
    try:
        result = subprocess.run(
            ["mpv", "--version"], capture_output=True, text=True, timeout=5
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


def _ipc_request(socket_path: Optional[str], command: dict[str, Any]) -> Optional[dict]:
    if not socket_path or not os.path.exists(socket_path):
        return None

    try:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(2.0)
        sock.connect(socket_path)
        sock.send((json.dumps(command) + "\n").encode("utf-8"))
        response = sock.recv(4096).decode("utf-8").strip()
        sock.close()
    except (socket.error, OSError):
        return None

    # mpv may interleave event lines; the reply is the one carrying "error"
    for line in response.splitlines():
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if "error" in data:
            return data
    return None


def send_mpv_command(socket_path: Optional[str], command: dict[str, Any]) -> bool:
    """Send JSON IPC command to MPV."""
    response = _ipc_request(socket_path, command)
    return response is not None and response.get("error") == "success"


def get_mpv_property(socket_path: Optional[str], property_name: str) -> Any:
    """Get a property value from MPV."""
    response = _ipc_request(socket_path, {"command": ["get_property", property_name]})
    if response and response.get("error") == "success":
        return response.get("data")
    return None


def set_mpv_property(socket_path: Optional[str], property_name: str, value: Any) -> bool:
    return send_mpv_command(socket_path, {"command": ["set_property", property_name, value]})


class MpvAudioOutput:
    """One mpv process acting as the preview player's audio element."""

    def __init__(
        self,
        socket_path: Optional[str] = None,
        volume: float = 1.0,
        watch_interval: float = WATCH_INTERVAL,
    ):
        if not socket_path:
            temp_dir = Path(tempfile.gettempdir())
            socket_path = str(temp_dir / f"fanplayer-mpv-{os.getpid()}")
        self.socket_path = socket_path
        self.watch_interval = watch_interval
        self.src: Optional[str] = None

        self._volume = max(0.0, min(1.0, volume))
        self._position = 0.0
        self._loaded_src: Optional[str] = None
        self._load_lock = asyncio.Lock()
        self._ended = False
        self._process: Optional[subprocess.Popen] = None
        self._watcher: Optional[asyncio.Task] = None
        self._listeners: Dict[str, List[Callable[[Any], None]]] = {}

    # Process lifecycle

    def start(self) -> bool:
        """Start MPV with JSON IPC. Returns False if it could not be started."""
        logger.info(f"Starting MPV audio output with socket: {self.socket_path}")

        try:
            if os.path.exists(self.socket_path):
                logger.debug(f"Removing existing socket: {self.socket_path}")
                os.unlink(self.socket_path)

            cmd = [
                "mpv",
                "--idle=yes",
                "--no-video",
                "--no-terminal",
                f"--input-ipc-server={self.socket_path}",
                f"--volume={round(self._volume * 100)}",
                "--keep-open=yes",
                "--load-scripts=no",
            ]
            self._process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                stdin=subprocess.DEVNULL,
            )

            start_time = time.time()
            while not os.path.exists(self.socket_path):
                if time.time() - start_time > SOCKET_TIMEOUT:
                    logger.error(f"MPV socket creation timeout after {SOCKET_TIMEOUT}s")
                    self._kill()
                    return False
                time.sleep(0.1)

            if send_mpv_command(self.socket_path, {"command": ["get_property", "idle-active"]}):
                logger.info("MPV started successfully")
                return True

            logger.error("MPV socket connection test failed")
            self._kill()
            return False

        except (subprocess.SubprocessError, OSError) as e:
            logger.error(f"Failed to start MPV: {e}")
            return False

    @property
    def is_running(self) -> bool:
        return (
            self._process is not None
            and self._process.poll() is None
            and os.path.exists(self.socket_path)
        )

    def close(self) -> None:
        if self._watcher is not None and not self._watcher.done():
            self._watcher.cancel()
        self._watcher = None
        self._kill()
        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError:
                logger.debug(f"Could not remove socket {self.socket_path}")

    def _kill(self) -> None:
        if self._process is None:
            return
        try:
            self._process.kill()
            self._process.wait(timeout=2.0)
        except (OSError, subprocess.TimeoutExpired):
            logger.debug("MPV process already gone")
        self._process = None

    # Audio element surface

    @property
    def current_time(self) -> float:
        return self._position

    @current_time.setter
    def current_time(self, seconds: float) -> None:
        self._position = max(0.0, float(seconds))
        if self._loaded_src:
            set_mpv_property(self.socket_path, "time-pos", self._position)

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, value: float) -> None:
        self._volume = max(0.0, min(1.0, float(value)))
        set_mpv_property(self.socket_path, "volume", round(self._volume * 100))

    async def play(self) -> None:
        """Load src if it changed, then unpause.

        Calls are serialized. If src is replaced while its file is loading,
        the call returns without unpausing and the newer call plays instead.

        Raises:
            RuntimeError: mpv is not running or refused the command
        """
        src = self.src
        if not src:
            raise RuntimeError("No source set")
        if not self.is_running:
            raise RuntimeError("MPV is not running")

        async with self._load_lock:
            if src != self.src:
                logger.debug(f"Skipping superseded source: {src}")
                return

            if src != self._loaded_src:
                loaded = await asyncio.to_thread(
                    send_mpv_command, self.socket_path, {"command": ["loadfile", src, "replace"]}
                )
                if not loaded:
                    raise RuntimeError(f"MPV could not load {src}")
                self._loaded_src = src
                self._position = 0.0

            if src != self.src:
                logger.debug(f"Source changed while loading, not starting: {src}")
                return

            self._ended = False
            if not await asyncio.to_thread(set_mpv_property, self.socket_path, "pause", False):
                raise RuntimeError("MPV refused to unpause")
        self._ensure_watcher()

    def pause(self) -> None:
        set_mpv_property(self.socket_path, "pause", True)

    def add_event_listener(self, name: str, callback: Callable[[Any], None]) -> None:
        self._listeners.setdefault(name, []).append(callback)

    def remove_event_listener(self, name: str, callback: Callable[[Any], None]) -> None:
        callbacks = self._listeners.get(name, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _dispatch(self, name: str, payload: Any = None) -> None:
        for callback in list(self._listeners.get(name, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Error in '{name}' listener")

    # Watcher

    def _ensure_watcher(self) -> None:
        if self._watcher is None or self._watcher.done():
            self._watcher = asyncio.get_running_loop().create_task(self._watch())

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self.watch_interval)

            if not self.is_running:
                logger.error("MPV process exited")
                self._dispatch(EVENT_ERROR, {"message": "MPV process exited"})
                return

            position = await asyncio.to_thread(get_mpv_property, self.socket_path, "time-pos")
            if position is not None and position != self._position:
                self._position = float(position)
                self._dispatch(EVENT_TIME_UPDATE)

            eof = await asyncio.to_thread(get_mpv_property, self.socket_path, "eof-reached")
            if eof and not self._ended:
                self._ended = True
                self._dispatch(EVENT_ENDED)
