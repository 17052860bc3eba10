import asyncio
import logging

import pytest

from audio.channels import Channel, ChannelState
from audio.feedback import (
    AMBIENT_MIX,
    Band,
    FeedbackStateMachine,
    Voice,
    ambient_voice,
    classify_band,
    target_mix,
)
from conftest import ALL_SOURCES, FakeBackend, ManualClock


def make_machine(backend=None, sources=None, **kwargs):
    return FeedbackStateMachine(
        ALL_SOURCES if sources is None else sources,
        backend=backend if backend is not None else FakeBackend(),
        **kwargs,
    )


def sound(machine, channel):
    return machine.registry.slot(channel).sound


# ===== band classification =====

@pytest.mark.parametrize("delta, band", [
    (-200, Band.FAR_BEHIND),
    (-50.01, Band.FAR_BEHIND),
    (-50, Band.BEHIND),
    (-20.01, Band.BEHIND),
    (-20, Band.CLOSE_BEHIND),
    (-5.01, Band.CLOSE_BEHIND),
    (-5, Band.LEVEL),
    (0, Band.LEVEL),
    (5, Band.LEVEL),
    (5.01, Band.CLOSE_AHEAD),
    (19.99, Band.CLOSE_AHEAD),
    (20, Band.AHEAD),
    (59.99, Band.AHEAD),
    (60, Band.FAR_AHEAD),
    (500, Band.FAR_AHEAD),
])
def test_band_boundaries(delta, band):
    assert classify_band(delta) is band


def test_bands_are_exhaustive_and_disjoint():
    predicates = {
        Band.FAR_BEHIND: lambda d: d < -50,
        Band.BEHIND: lambda d: -50 <= d < -20,
        Band.CLOSE_BEHIND: lambda d: -20 <= d < -5,
        Band.LEVEL: lambda d: -5 <= d <= 5,
        Band.CLOSE_AHEAD: lambda d: 5 < d < 20,
        Band.AHEAD: lambda d: 20 <= d < 60,
        Band.FAR_AHEAD: lambda d: d >= 60,
    }
    for i in range(1000):
        delta = -200 + i * 400 / 999
        matching = [band for band, matches in predicates.items() if matches(delta)]
        assert len(matching) == 1
        assert classify_band(delta) is matching[0]


def test_ambient_voice_volume_and_pan():
    assert ambient_voice(0) == Voice(0.6, 0.2)
    assert ambient_voice(-30) == Voice(pytest.approx(0.35), -0.2)
    assert ambient_voice(200).volume == pytest.approx(0.12)


def test_target_mix_far_bands():
    assert target_mix(-80) is None
    assert target_mix(80) is None
    assert target_mix(-80, force_ambient=True) == AMBIENT_MIX


def test_target_mix_band_table():
    assert target_mix(-30) == {Channel.FOOTSTEPS: Voice(0.3, -0.6)}
    assert target_mix(-10) == {Channel.FOOTSTEPS: Voice(0.6, -0.4), Channel.BREATHING: Voice(0.4, -0.4)}
    assert target_mix(3) == {Channel.BREATHING: Voice(0.85, 0.4), Channel.HEARTBEAT: Voice(0.75, 0.0)}
    assert target_mix(-3)[Channel.BREATHING] == Voice(0.85, -0.4)
    assert target_mix(10) == {Channel.BREATHING: Voice(0.5, 0.5), Channel.FOOTSTEPS: Voice(0.45, 0.5)}
    assert target_mix(30) == {Channel.FOOTSTEPS: Voice(0.2, 0.7)}


def test_target_mix_ambient_layer_comes_first():
    mix = target_mix(-30, force_ambient=True)
    assert list(mix) == [Channel.GHOST_DISTANT, Channel.FOOTSTEPS]
    assert mix[Channel.GHOST_DISTANT].pan == -0.2


# ===== lifecycle =====

def test_no_assets_disables_machine():
    backend = FakeBackend()

    async def scenario():
        machine = FeedbackStateMachine({name: None for name in ALL_SOURCES}, backend=backend)
        assert not machine.enabled
        machine.load()
        assert await machine.update_audio(0) is None
        assert not await machine.play_looped(Channel.BREATHING, 1.0, 0.0)
        await machine.stop_all()
        await machine.unload()

    asyncio.run(scenario())
    assert backend.configured == 0
    assert backend.load_attempts == []


def test_no_backend_disables_machine():
    assert not FeedbackStateMachine(ALL_SOURCES, backend=None).enabled


def test_ready_loads_every_bound_channel():
    backend = FakeBackend()
    sources = dict(ALL_SOURCES, cheer=None)

    async def scenario():
        machine = make_machine(backend, sources)
        await machine.ready()
        return machine

    machine = asyncio.run(scenario())
    assert backend.configured == 1
    assert machine.channel_state(Channel.BREATHING) is ChannelState.READY
    assert machine.channel_state(Channel.CHEER) is ChannelState.UNLOADED
    assert sound(machine, Channel.BREATHING).looping
    assert "cheer.wav" not in backend.load_attempts


def test_failed_channel_is_isolated_and_logged_once(caplog):
    backend = FakeBackend(fail_sources={"heartbeat.wav"})

    async def scenario():
        machine = make_machine(backend)
        await machine.ready()
        await machine.update_audio(0)
        await machine.update_audio(1)
        return machine

    with caplog.at_level(logging.WARNING):
        machine = asyncio.run(scenario())

    assert machine.channel_state(Channel.HEARTBEAT) is ChannelState.FAILED
    assert machine.channel_state(Channel.BREATHING) is ChannelState.READY
    assert sound(machine, Channel.BREATHING).playing
    heartbeat_warnings = [r for r in caplog.records if "heartbeat" in r.getMessage()]
    assert len(heartbeat_warnings) == 1


def test_session_configuration_failure_still_loads():
    backend = FakeBackend(fail_configure=True)

    async def scenario():
        machine = make_machine(backend)
        await machine.ready()
        return machine

    assert asyncio.run(scenario()).channel_state(Channel.FOOTSTEPS) is ChannelState.READY


# ===== playback =====

def test_play_looped_is_idempotent():
    async def scenario():
        machine = make_machine()
        await machine.play_looped(Channel.BREATHING, 0.5, 0.1)
        await machine.play_looped(Channel.BREATHING, 0.5, 0.1)
        return sound(machine, Channel.BREATHING)

    breathing = asyncio.run(scenario())
    assert len(breathing.ops("play")) == 1
    assert breathing.ops("set_volume") == [("set_volume", 0.5), ("set_volume", 0.5)]
    assert breathing.ops("set_pan") == [("set_pan", 0.1), ("set_pan", 0.1)]


def test_update_audio_follows_the_band():
    async def scenario():
        machine = make_machine()
        assert await machine.update_audio(-30) is Band.BEHIND
        footsteps = sound(machine, Channel.FOOTSTEPS)
        breathing = sound(machine, Channel.BREATHING)
        assert footsteps.playing and (footsteps.volume, footsteps.pan) == (0.3, -0.6)
        assert not breathing.playing

        await machine.update_audio(-10)
        assert (footsteps.volume, footsteps.pan) == (0.6, -0.4)
        assert breathing.playing and (breathing.volume, breathing.pan) == (0.4, -0.4)
        assert len(footsteps.ops("play")) == 1

        await machine.update_audio(30)
        assert not breathing.playing
        assert (footsteps.volume, footsteps.pan) == (0.2, 0.7)

        await machine.update_audio(100)
        assert not footsteps.playing

    asyncio.run(scenario())


def test_update_audio_with_ambient_layer():
    async def scenario():
        machine = make_machine()
        await machine.update_audio(-30, force_ambient=True)
        ghost = sound(machine, Channel.GHOST_DISTANT)
        assert ghost.playing
        assert ghost.volume == pytest.approx(0.35)
        assert ghost.pan == -0.2

        await machine.update_audio(-120, force_ambient=True)
        assert (ghost.volume, ghost.pan) == (0.25, 0.0)
        assert sound(machine, Channel.BREATHING).volume == 0.35
        assert sound(machine, Channel.FOOTSTEPS).volume == 0.25

    asyncio.run(scenario())


def test_band_evaluation_leaves_boss_theme_alone():
    async def scenario():
        machine = make_machine()
        await machine.play_boss_theme(0.5)
        await machine.update_audio(30)
        boss = sound(machine, Channel.BOSS_THEME)
        assert boss.playing
        await machine.stop_all()
        assert not boss.playing

    asyncio.run(scenario())


def test_held_channel_survives_band_changes():
    async def scenario():
        machine = make_machine()
        await machine.update_audio(0)
        heartbeat = sound(machine, Channel.HEARTBEAT)
        assert heartbeat.playing

        await machine.update_audio(30, held=(Channel.HEARTBEAT,))
        assert heartbeat.playing
        assert not sound(machine, Channel.BREATHING).playing

        await machine.update_audio(30)
        assert not heartbeat.playing

    asyncio.run(scenario())


def test_finish_one_shots_waits_for_cheer():
    async def scenario():
        machine = make_machine(one_shot_timeout_s=5.0)
        assert await machine.finish_one_shots()
        await machine.play_cheer()
        cheer = sound(machine, Channel.CHEER)

        waiting = asyncio.ensure_future(machine.finish_one_shots())
        await asyncio.sleep(0.15)
        assert not waiting.done()
        cheer.playing = False
        assert await asyncio.wait_for(waiting, 1.0)

    asyncio.run(scenario())


def test_finish_one_shots_gives_up_after_timeout():
    async def scenario():
        machine = make_machine(one_shot_timeout_s=0.1)
        await machine.play_cheer()
        return await asyncio.wait_for(machine.finish_one_shots(), 2.0)

    assert asyncio.run(scenario()) is False


def test_playback_failure_is_contained():
    backend = FakeBackend(sound_fail_on=("play",))

    async def scenario():
        machine = make_machine(backend)
        assert not await machine.play_looped(Channel.FOOTSTEPS, 0.3, 0.0)
        assert await machine.update_audio(-30) is Band.BEHIND

    asyncio.run(scenario())


def test_cheer_replays_every_time():
    async def scenario():
        machine = make_machine()
        assert await machine.play_cheer()
        assert await machine.play_cheer()
        return sound(machine, Channel.CHEER)

    cheer = asyncio.run(scenario())
    assert cheer.ops("replay") == [("replay",), ("replay",)]
    assert not cheer.looping


def test_stop_all_when_nothing_plays():
    async def scenario():
        machine = make_machine()
        await machine.stop_all()
        return machine

    machine = asyncio.run(scenario())
    assert all(not s.ops("stop") for _, s in machine.registry.ready_sounds())


# ===== haptics =====

def test_haptic_rate_limited():
    clock = ManualClock(0)
    pulses = []

    async def scenario():
        machine = make_machine(haptic=lambda: pulses.append(clock.now), clock=clock)
        for _ in range(10):
            await machine.update_audio(0)
            clock.advance(500)

    asyncio.run(scenario())
    assert len(pulses) <= 3
    assert pulses == [0, 2000, 4000]


def test_haptics_disabled():
    pulses = []

    async def scenario():
        machine = make_machine(enable_haptics=False, haptic=lambda: pulses.append(1))
        await machine.update_audio(0)

    asyncio.run(scenario())
    assert pulses == []


def test_haptic_failure_is_contained():
    def broken():
        raise RuntimeError("no vibrator")

    machine = FeedbackStateMachine(ALL_SOURCES, backend=FakeBackend(), haptic=broken)
    assert machine.maybe_haptic()


# ===== teardown =====

def test_unload_once_and_silent_afterwards():
    backend = FakeBackend()

    async def scenario():
        machine = make_machine(backend)
        await machine.update_audio(0)
        await machine.unload()
        await machine.unload()
        await machine.play_breathing(1.0, 0.0)
        await machine.play_cheer()
        await machine.update_audio(-30)
        await machine.stop_all()
        return machine

    machine = asyncio.run(scenario())
    assert backend.closed == 1
    assert not machine.active
    for source, fake in backend.sounds.items():
        assert fake.ops("unload") == [("unload",)], source
        # Nothing after the unload
        assert fake.commands[-1] == ("unload",)


def test_unload_while_loading_releases_late_sounds():
    gate = asyncio.Event()
    backend = FakeBackend(gate=gate)

    async def scenario():
        machine = make_machine(backend)
        machine.load()
        await asyncio.sleep(0)
        unloading = asyncio.ensure_future(machine.unload())
        await asyncio.sleep(0)
        gate.set()
        await unloading
        return machine

    machine = asyncio.run(scenario())
    assert backend.closed == 1
    assert backend.load_attempts == ["breathing.wav"]
    assert backend.sounds["breathing.wav"].commands == [("unload",)]
    assert machine.channel_state(Channel.BREATHING) is ChannelState.UNLOADED
