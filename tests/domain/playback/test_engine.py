"""Tests for the playback engine state machine."""

import asyncio

import pytest

from fanplayer.domain.playback.exceptions import NoPlaybackMethodError, PreviewUnavailableError
from fanplayer.domain.playback.models import PlaybackStatus, RepeatMode, StrategyKind


async def _settle() -> None:
    """Let spawned engine tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)


class TestPlayTrack:
    @pytest.mark.anyio
    async def test_preview_fallback_without_device(self, rig, tracks) -> None:
        """Both sources present, device not ready -> preview plays it."""
        await rig.engine.play_track(tracks[0])

        engine = rig.engine
        assert engine.current_track == tracks[0]
        assert engine.is_playing
        assert engine.status == PlaybackStatus.PLAYING
        assert engine.active_backend == StrategyKind.PREVIEW
        assert rig.output.src == tracks[0].preview_url

    @pytest.mark.anyio
    async def test_unplayable_track_leaves_state_unchanged(self, rig, tracks, track_factory) -> None:
        await rig.engine.play_track(tracks[0])

        with pytest.raises(NoPlaybackMethodError):
            await rig.engine.play_track(track_factory("N", preview=False, remote=False))

        assert rig.engine.current_track == tracks[0]
        assert rig.engine.is_playing

    @pytest.mark.anyio
    async def test_play_failure_propagates_and_pauses(self, rig, tracks) -> None:
        rig.output.fail_play = True

        with pytest.raises(PreviewUnavailableError):
            await rig.engine.play_track(tracks[0])

        assert rig.engine.current_track == tracks[0]
        assert not rig.engine.is_playing
        assert rig.engine.status == PlaybackStatus.PAUSED

    @pytest.mark.anyio
    async def test_remote_play_loads_until_device_confirms(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_track(tracks[0])
        assert rig.engine.status == PlaybackStatus.LOADING
        assert not rig.engine.is_playing

        player.emit("player_state_changed", state_factory(tracks[0], paused=False, position=800))

        engine = rig.engine
        assert engine.status == PlaybackStatus.PLAYING
        assert engine.is_playing
        assert engine.current_time_ms == 800
        assert engine.active_backend == StrategyKind.REMOTE
        assert rig.output.src is None

    @pytest.mark.anyio
    async def test_remote_echo_of_old_track_ignored_while_loading(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_track(tracks[1])
        player.emit("player_state_changed", state_factory(tracks[0], paused=False))

        assert rig.engine.current_track == tracks[1]
        assert rig.engine.status == PlaybackStatus.LOADING

    @pytest.mark.anyio
    async def test_stale_response_does_not_clobber_newer_track(self, rig, tracks, state_factory) -> None:
        """play(X) then play(Y); X resolving late leaves Y current."""
        player = await rig.connect_remote()
        gate = asyncio.Event()
        rig.transport.play_gates[tracks[0].remote_uri] = gate

        first = asyncio.create_task(rig.engine.play_track(tracks[0]))
        await asyncio.sleep(0)
        await rig.engine.play_track(tracks[1])
        player.emit("player_state_changed", state_factory(tracks[1], paused=False))

        gate.set()
        await first

        assert rig.engine.current_track == tracks[1]
        assert rig.engine.status == PlaybackStatus.PLAYING

    @pytest.mark.anyio
    async def test_stale_failure_is_discarded(self, rig, tracks, track_factory) -> None:
        """A superseded play that fails neither raises nor touches state."""
        remote_only = track_factory("R", preview=False)
        await rig.connect_remote()
        gate = asyncio.Event()
        rig.transport.play_gates[remote_only.remote_uri] = gate

        first = asyncio.create_task(rig.engine.play_track(remote_only))
        await asyncio.sleep(0)
        await rig.engine.play_track(tracks[1])

        rig.transport.fail_with = 500
        gate.set()
        await first

        assert rig.engine.current_track == tracks[1]
        assert rig.engine.status == PlaybackStatus.LOADING

    @pytest.mark.anyio
    async def test_play_from_queue(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 1)

        assert rig.engine.queue == tracks
        assert rig.engine.current_index == 1
        assert rig.engine.current_track == tracks[1]

    @pytest.mark.anyio
    async def test_play_from_queue_out_of_range(self, rig, tracks) -> None:
        with pytest.raises(IndexError):
            await rig.engine.play_from_queue(tracks, 5)


class TestTransport:
    @pytest.mark.anyio
    async def test_toggle_play_pause(self, rig, tracks) -> None:
        await rig.engine.play_track(tracks[0])
        await rig.engine.toggle_play_pause()
        assert not rig.engine.is_playing
        assert rig.engine.status == PlaybackStatus.PAUSED
        assert not rig.output.playing

        await rig.engine.toggle_play_pause()

        assert rig.engine.is_playing
        assert rig.output.playing

    @pytest.mark.anyio
    async def test_resume_without_track_is_noop(self, rig) -> None:
        assert await rig.engine.resume() is False
        assert rig.engine.status == PlaybackStatus.IDLE

    @pytest.mark.anyio
    async def test_seek_updates_position(self, rig, tracks) -> None:
        await rig.engine.play_track(tracks[0])

        assert await rig.engine.seek(12_000)
        assert rig.engine.current_time_ms == 12_000
        assert rig.output.current_time == 12.0
        assert rig.engine.current_track == tracks[0]

    @pytest.mark.anyio
    async def test_volume_clamped_and_applied(self, rig) -> None:
        await rig.engine.set_volume(150)

        assert rig.engine.volume == 100
        assert rig.output.volume == 1.0

        await rig.engine.set_volume(30)
        assert rig.output.volume == 0.3

    @pytest.mark.anyio
    async def test_volume_reapplied_when_device_takes_over(self, rig) -> None:
        await rig.engine.set_volume(30)
        player = await rig.connect_remote()
        await _settle()

        assert ("set_volume", 0.3) in player.calls

    @pytest.mark.anyio
    async def test_failed_remote_command_is_absorbed(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_track(tracks[0])
        player.emit("player_state_changed", state_factory(tracks[0], paused=False))
        player.fail = True

        assert await rig.engine.pause() is False
        assert rig.engine.is_playing


class TestNextPrevious:
    @pytest.mark.anyio
    async def test_next_plays_adjacent_track(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 0)
        await rig.engine.next()

        assert rig.engine.current_track == tracks[1]
        assert rig.engine.current_index == 1
        assert rig.output.src == tracks[1].preview_url

    @pytest.mark.anyio
    async def test_next_at_end_with_preview_is_noop(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 2)
        await rig.engine.next()

        assert rig.engine.current_track == tracks[2]
        assert rig.output.play_calls == 1

    @pytest.mark.anyio
    async def test_previous_at_start_with_preview_restarts(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 0)
        await rig.engine.seek(20_000)
        await rig.engine.previous()

        assert rig.engine.current_track == tracks[0]
        assert rig.engine.current_time_ms == 0
        assert rig.output.current_time == 0

    @pytest.mark.anyio
    async def test_previous_plays_adjacent_track(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 2)
        await rig.engine.previous()

        assert rig.engine.current_track == tracks[1]

    @pytest.mark.anyio
    async def test_boundary_with_device_uses_native_skip(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_from_queue(tracks, 2)
        player.emit("player_state_changed", state_factory(tracks[2], paused=False))
        await rig.engine.next()
        await rig.engine.play_from_queue(tracks, 0)
        await rig.engine.previous()

        assert ("next_track",) in player.calls
        assert ("previous_track",) in player.calls

    @pytest.mark.anyio
    async def test_repeat_one_replays_in_place(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 1)
        await rig.engine.toggle_repeat()
        await rig.engine.next()

        assert rig.engine.current_track == tracks[1]
        assert rig.output.play_calls == 2


class TestTrackEnd:
    @pytest.mark.anyio
    async def test_ended_advances_to_next(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 0)
        rig.output.emit("ended")
        await _settle()

        assert rig.engine.current_track == tracks[1]
        assert rig.engine.is_playing

    @pytest.mark.anyio
    async def test_ended_at_last_track_goes_idle(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 2)
        rig.output.emit("ended")
        await _settle()

        assert rig.engine.current_track is None
        assert rig.engine.status == PlaybackStatus.IDLE
        assert not rig.engine.is_playing

    @pytest.mark.anyio
    async def test_ended_with_repeat_one_replays(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 0)
        await rig.engine.toggle_repeat()
        rig.output.emit("ended")
        await _settle()

        assert rig.engine.current_track == tracks[0]
        assert rig.output.play_calls == 2

    @pytest.mark.anyio
    async def test_time_updates_drive_position(self, rig, tracks) -> None:
        await rig.engine.play_track(tracks[0])
        rig.output.current_time = 7.5
        rig.output.emit("timeupdate")

        assert rig.engine.current_time_ms == 7500

    @pytest.mark.anyio
    async def test_audio_error_stops_playing(self, rig, tracks) -> None:
        await rig.engine.play_track(tracks[0])
        rig.output.emit("error", {"code": 4})

        assert not rig.engine.is_playing
        assert rig.engine.status == PlaybackStatus.PAUSED


class TestModes:
    @pytest.mark.anyio
    async def test_repeat_one_collapses_and_restores_queue(self, rig, tracks) -> None:
        """[A,B,C] current B -> repeat-one shows [B] -> off restores, pointing at B."""
        await rig.engine.play_from_queue(tracks, 1)
        assert await rig.engine.toggle_repeat() == RepeatMode.ONE
        assert [t.id for t in rig.engine.queue] == ["B"]
        assert await rig.engine.toggle_repeat() == RepeatMode.OFF

        assert [t.id for t in rig.engine.queue] == ["A", "B", "C"]
        assert rig.engine.current_index == 1

    @pytest.mark.anyio
    async def test_shuffle_keeps_current_track_in_place(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 1)

        assert await rig.engine.toggle_shuffle() is True
        assert rig.engine.queue[1] == tracks[1]
        assert rig.engine.current_index == 1

    @pytest.mark.anyio
    async def test_shuffle_while_repeat_one_applies_to_full_queue(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 1)
        await rig.engine.toggle_repeat()
        await rig.engine.toggle_shuffle()
        assert [t.id for t in rig.engine.queue] == ["B"]
        await rig.engine.toggle_repeat()

        assert rig.engine.is_shuffled
        assert rig.engine.queue[1] == tracks[1]
        assert sorted(t.id for t in rig.engine.queue) == ["A", "B", "C"]

    @pytest.mark.anyio
    async def test_set_queue_resets_shuffle(self, rig, tracks) -> None:
        await rig.engine.play_from_queue(tracks, 0)
        await rig.engine.toggle_shuffle()

        rig.engine.set_queue(tracks)

        assert not rig.engine.is_shuffled
        assert rig.engine.current_index == 0

    @pytest.mark.anyio
    async def test_remote_shuffle_guarded_against_stale_echo(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_from_queue(tracks, 0)
        assert await rig.engine.toggle_shuffle() is True
        player.emit("player_state_changed", state_factory(tracks[0], shuffle=False))

        assert rig.engine.is_shuffled
        assert rig.transport.calls[-1] == ("shuffle", "token-1", "device-1", True)
        # Local convenience state mirrors the device
        assert rig.engine.queue_manager.is_shuffled

    @pytest.mark.anyio
    async def test_remote_repeat_skips_collapse(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_from_queue(tracks, 1)
        player.emit("player_state_changed", state_factory(tracks[1], paused=False))

        assert await rig.engine.toggle_repeat() == RepeatMode.ONE
        assert rig.transport.calls[-1] == ("repeat", "token-1", "device-1", "track")
        assert len(rig.engine.queue) == 3
        assert rig.engine.repeat.mode == RepeatMode.ONE


class TestBackendSwitch:
    @pytest.mark.anyio
    async def test_device_ready_restores_collapsed_queue(self, rig, tracks, state_factory) -> None:
        """Repeat-one set on preview, then a device with repeat off takes over."""
        await rig.engine.play_from_queue(tracks, 1)
        await rig.engine.toggle_repeat()
        assert [t.id for t in rig.engine.queue] == ["B"]

        player = await rig.connect_remote()
        player.emit("player_state_changed", state_factory(tracks[1], paused=False, repeat_mode=0))
        await _settle()

        snapshot = rig.engine.snapshot()
        assert snapshot.active_backend == StrategyKind.REMOTE
        assert snapshot.repeat_mode == RepeatMode.OFF
        assert [t.id for t in snapshot.queue] == ["A", "B", "C"]
        assert snapshot.current_index == 1

    @pytest.mark.anyio
    async def test_fallback_to_preview_collapses_for_device_repeat(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_from_queue(tracks, 1)
        player.emit("player_state_changed", state_factory(tracks[1], paused=False, repeat_mode=2))
        assert len(rig.engine.queue) == 3

        player.emit("not_ready", {"device_id": "device-1"})
        await _settle()

        snapshot = rig.engine.snapshot()
        assert snapshot.active_backend == StrategyKind.PREVIEW
        assert snapshot.repeat_mode == RepeatMode.ONE
        assert [t.id for t in snapshot.queue] == ["B"]

    @pytest.mark.anyio
    async def test_device_ready_silences_preview_clip(self, rig, tracks) -> None:
        await rig.engine.play_track(tracks[0])
        assert rig.output.playing

        await rig.connect_remote()
        await _settle()

        assert not rig.output.playing
        assert not rig.engine.is_playing
        assert rig.engine.status == PlaybackStatus.PAUSED
        assert rig.engine.current_track == tracks[0]


class TestRemoteSync:
    @pytest.mark.anyio
    async def test_adopts_track_changed_on_device(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_from_queue(tracks, 0)
        player.emit("player_state_changed", state_factory(tracks[0], paused=False))
        player.emit("player_state_changed", state_factory(tracks[2], paused=False, position=50))

        current = rig.engine.current_track
        assert current.id == "C"
        assert current.remote_uri == "spotify:track:C"
        assert current.artist == "Artist C"
        assert current.cover_url == tracks[2].cover_url
        assert rig.engine.current_index == 2
        assert rig.engine.current_time_ms == 50

    @pytest.mark.anyio
    async def test_device_loss_stops_playback(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        await rig.engine.play_track(tracks[0])
        player.emit("player_state_changed", state_factory(tracks[0], paused=False))
        player.emit("not_ready", {"device_id": "device-1"})
        await _settle()

        assert rig.engine.active_backend == StrategyKind.PREVIEW
        assert not rig.engine.is_playing
        assert rig.engine.status == PlaybackStatus.PAUSED
        assert rig.engine.current_track == tracks[0]

    @pytest.mark.anyio
    async def test_remote_modes_exposed_when_primary(self, rig, tracks, state_factory) -> None:
        player = await rig.connect_remote()
        player.emit("player_state_changed", state_factory(tracks[0], shuffle=True, repeat_mode=2))

        assert rig.engine.is_shuffled
        assert rig.engine.repeat_mode == RepeatMode.ONE


class TestListeners:
    @pytest.mark.anyio
    async def test_subscribe_and_unsubscribe(self, rig, tracks) -> None:
        seen = []
        unsubscribe = rig.engine.subscribe(seen.append)

        await rig.engine.play_track(tracks[0])
        count = len(seen)
        unsubscribe()
        await rig.engine.pause()

        assert count >= 2
        assert seen[0].status == PlaybackStatus.LOADING
        assert seen[-1].status == PlaybackStatus.PLAYING
        assert len(seen) == count

    @pytest.mark.anyio
    async def test_listener_errors_do_not_break_engine(self, rig, tracks) -> None:
        def broken(snapshot):
            raise RuntimeError("render failed")

        rig.engine.subscribe(broken)
        await rig.engine.play_track(tracks[0])

        assert rig.engine.is_playing
        assert rig.snapshots[-1].is_playing

    @pytest.mark.anyio
    async def test_close_releases_backends(self, rig) -> None:
        player = await rig.connect_remote()
        await rig.engine.close()

        assert player.disconnected
        assert rig.output.closed
        assert not rig.session.ready
