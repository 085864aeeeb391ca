import asyncio

import pytest

from arm_teleop.angle_mapper import AngleMapper
from arm_teleop.config import JointConfig, PipelineConfig, StaticConfigSource
from arm_teleop.pipeline import TeleopPipeline
from arm_teleop.state import PipelineState, Pose

from helpers import FakeSession, make_hand


class MutableSource:
    def __init__(self, config):
        self.config = config

    def current(self):
        return self.config


def instant_pipeline(**overrides) -> TeleopPipeline:
    """No filtering and no easing: current equals the mapped hand after one tick."""
    cfg = PipelineConfig(smoothing_coefficient=1.0, filter_window_size=1, **overrides)
    return TeleopPipeline(StaticConfigSource(cfg))


def test_target_tracks_filtered_hand():
    pipeline = TeleopPipeline()
    hand = make_hand(wrist=(0.25, 0.5))
    result = pipeline.tick(hand)

    assert result.hand_visible
    assert pipeline.state.target.base == pytest.approx(45.0)
    assert pipeline.state.target.gripper == 1
    # One 10% step from neutral toward 45
    assert pipeline.state.current.base == pytest.approx(90.0 - 0.1 * 45.0)


def test_signal_loss_eases_home_and_closes_gripper_immediately():
    state = PipelineState(
        target=Pose(150.0, 40.0, 130.0, 1),
        current=Pose(150.0, 40.0, 130.0, 1),
    )
    state.noise_filter.update({"base": 150.0, "shoulder": 40.0, "elbow": 130.0})
    pipeline = TeleopPipeline(state=state)

    previous = [abs(a - 90.0) for a in state.current.angles()]
    for frame in range(10):
        result = pipeline.tick(None)
        assert not result.hand_visible
        assert state.target == Pose.neutral()
        assert state.current.gripper == 0
        assert result.command.gripper == 0
        distances = [abs(a - 90.0) for a in state.current.angles()]
        assert all(d < p for d, p in zip(distances, previous))
        previous = distances

    assert state.noise_filter.fill_levels() == {"base": 0, "shoulder": 0, "elbow": 0}
    assert state.signal_lost_frames == 10
    # Still easing, never snapped
    assert state.current.base > 90.0
    assert state.current.shoulder < 90.0


def test_filter_restarts_empty_after_signal_loss():
    pipeline = TeleopPipeline()
    for _ in range(3):
        pipeline.tick(make_hand(wrist=(0.9, 0.1)))
    pipeline.tick(None)

    hand = make_hand(wrist=(0.3, 0.6))
    pipeline.tick(hand)
    expected = AngleMapper(PipelineConfig()).map(hand)
    assert pipeline.state.target.base == pytest.approx(expected["base"])
    assert pipeline.state.target.elbow == pytest.approx(expected["elbow"])


def test_partial_hand_counts_as_signal_loss():
    pipeline = TeleopPipeline()
    result = pipeline.tick(make_hand()[:10])
    assert not result.hand_visible
    assert pipeline.state.target == Pose.neutral()


def test_first_frame_sends_even_at_neutral():
    async def scenario():
        session = FakeSession()
        await session.connect()
        pipeline = TeleopPipeline()
        result = pipeline.tick(None, session)
        assert result.packet == b"B090S090E090G000\r\n"
        assert await result.send_task is True
        await asyncio.sleep(0)
        assert pipeline.state.last_sent == Pose(90, 90, 90, 0)

    asyncio.run(scenario())


def test_no_send_without_connected_session():
    pipeline = TeleopPipeline()
    assert pipeline.tick(make_hand()).packet is None
    assert pipeline.tick(make_hand(), FakeSession()).packet is None
    assert pipeline.state.last_sent == Pose.sentinel()


def test_send_failure_is_retried_next_frame():
    async def scenario():
        session = FakeSession(fail=True)
        await session.connect()
        pipeline = instant_pipeline()
        hand = make_hand(wrist=(0.4, 0.4))

        first = pipeline.tick(hand, session)
        assert first.packet is not None
        assert await first.send_task is False
        await asyncio.sleep(0)
        assert pipeline.state.last_sent == Pose.sentinel()

        session.fail = False
        second = pipeline.tick(hand, session)
        assert second.packet == first.packet
        assert await second.send_task is True
        await asyncio.sleep(0)
        assert session.writes == [first.packet, first.packet]
        assert pipeline.state.last_sent == second.command

    asyncio.run(scenario())


def test_busy_session_skips_frame():
    async def scenario():
        session = FakeSession()
        await session.connect()
        pipeline = TeleopPipeline()

        first = pipeline.tick(make_hand(), session)
        second = pipeline.tick(make_hand(), session)
        assert first.send_task is not None
        assert second.packet is None
        await first.send_task
        assert len(session.writes) == 1

    asyncio.run(scenario())


def test_deadband_suppresses_repeat_and_gripper_change_passes():
    async def scenario():
        session = FakeSession()
        await session.connect()
        pipeline = instant_pipeline()
        hand = make_hand(wrist=(0.3, 0.3), pinch=0.2)

        first = pipeline.tick(hand, session)
        await first.send_task
        await asyncio.sleep(0)

        repeat = pipeline.tick(hand, session)
        assert repeat.packet is None
        assert pipeline.gate.suppressed == 1

        pinched = make_hand(wrist=(0.3, 0.3), pinch=0.01)
        closed = pipeline.tick(pinched, session)
        assert closed.packet is not None
        assert closed.packet[:-2] == first.packet[:-5] + b"000"
        await closed.send_task

    asyncio.run(scenario())


def test_small_motion_below_threshold_is_not_sent():
    async def scenario():
        session = FakeSession()
        await session.connect()
        pipeline = instant_pipeline(deadband_threshold=5.0)

        first = pipeline.tick(make_hand(wrist=(0.5, 0.5)), session)
        await first.send_task
        await asyncio.sleep(0)

        # 0.01 of image width is 1.8 degrees of base rotation
        nudged = pipeline.tick(make_hand(wrist=(0.51, 0.5)), session)
        assert nudged.packet is None
        moved = pipeline.tick(make_hand(wrist=(0.55, 0.5)), session)
        assert moved.packet is not None
        await moved.send_task

    asyncio.run(scenario())


def test_config_is_reread_every_tick():
    source = MutableSource(PipelineConfig(filter_window_size=3))
    pipeline = TeleopPipeline(source)
    pipeline.tick(make_hand())
    assert pipeline.state.noise_filter.size == 3

    source.config = PipelineConfig(filter_window_size=5, smoothing_coefficient=0.5)
    pipeline.tick(make_hand())
    assert pipeline.state.noise_filter.size == 5
    assert pipeline.smoother.alpha == 0.5


def test_out_of_domain_samples_are_averaged_before_clamping():
    pipeline = TeleopPipeline()
    for palm in (0.35, 0.15, 0.15):
        pipeline.tick(make_hand(palm=palm))
    # The window holds the unclamped 230: (230 + 90 + 90) / 3
    assert pipeline.state.target.shoulder == pytest.approx(410.0 / 3)

    for palm in (0.35, 0.35, 0.15):
        pipeline.tick(make_hand(palm=palm))
    assert pipeline.state.target.shoulder == 180


def test_trim_change_applies_on_next_frame():
    source = MutableSource(PipelineConfig())
    pipeline = TeleopPipeline(source)
    for _ in range(3):
        pipeline.tick(make_hand(wrist=(0.5, 0.5)))
    assert pipeline.state.target.base == pytest.approx(90.0)

    source.config = PipelineConfig(base=JointConfig(0, 180, reversed=True, trim=30))
    pipeline.tick(make_hand(wrist=(0.5, 0.5)))
    assert pipeline.state.target.base == pytest.approx(120.0)
