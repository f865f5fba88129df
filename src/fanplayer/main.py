"""
Fanplayer - main entry point. Builds the playback engine and serves it.
"""

import argparse
from pathlib import Path
from typing import Optional

import uvicorn
from loguru import logger

from fanplayer.core.config import Config, get_log_file_path, load_config
from fanplayer.core.output import setup_loguru
from fanplayer.domain.playback.engine import PlaybackEngine
from fanplayer.domain.playback.mpv_output import MpvAudioOutput, check_mpv_available
from fanplayer.domain.playback.preview_player import LocalPreviewPlayer
from fanplayer.domain.playback.remote_session import RemoteDeviceSession
from fanplayer.domain.providers.spotify.api import SpotifyTransport
from fanplayer.domain.providers.spotify.auth import AccessTokenProvider
from fanplayer.domain.providers.spotify.connect_device import connect_device_factory
from fanplayer.web.app import create_app


def build_output(config: Config) -> Optional[MpvAudioOutput]:
    """Start mpv for preview clips, or None if it is disabled or unavailable."""
    if not config.player.use_mpv:
        logger.info("mpv disabled, preview playback unavailable")
        return None
    if not check_mpv_available():
        logger.warning("mpv not found on PATH, preview playback unavailable")
        return None

    output = MpvAudioOutput(
        socket_path=config.player.mpv_socket_path,
        volume=config.player.volume / 100,
    )
    if not output.start():
        return None
    return output


def build_engine(config: Config) -> PlaybackEngine:
    transport = SpotifyTransport(config.spotify.api_base, config.spotify.request_timeout)
    session = RemoteDeviceSession(
        transport,
        player_factory=connect_device_factory(
            transport,
            preferred_device_name=config.spotify.preferred_device_name,
            poll_interval=config.player.position_poll_interval,
        ),
        name=config.player.device_name,
        volume=config.player.volume,
        poll_interval=config.player.position_poll_interval,
        shuffle_confirm_timeout=config.player.shuffle_confirm_timeout,
    )
    preview = LocalPreviewPlayer(build_output(config), volume=config.player.volume)
    return PlaybackEngine(session, preview, volume=config.player.volume)


def main() -> None:
    """Main entry point for the fanplayer command."""
    parser = argparse.ArgumentParser(description="Fanplayer - playback engine service")
    parser.add_argument("--config", type=Path, help="Path to config.toml")
    parser.add_argument("--host", help="Override [web] host")
    parser.add_argument("--port", type=int, help="Override [web] port")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level and echo logs to stderr",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    setup_loguru(
        get_log_file_path(config),
        level="DEBUG" if args.debug else config.logging.level,
        rotation=config.logging.rotation,
        retention=config.logging.retention,
        console_output=args.debug or config.logging.console_output,
    )

    token_provider = AccessTokenProvider(
        token_url=config.spotify.token_url,
        refresh_interval=config.spotify.token_refresh_interval,
        timeout=config.spotify.request_timeout,
        static_token=config.spotify.access_token,
    )
    app = create_app(build_engine(config), token_provider, config)

    host = args.host or config.web.host
    port = args.port or config.web.port
    logger.info(f"Serving playback API on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="warning")


if __name__ == "__main__":
    main()
