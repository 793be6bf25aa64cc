"""Tests for extraction runs, cancellation, and narration through the controller."""

import asyncio

import pytest

from crete.cv.analysis_controller import AnalysisController
from crete.cv.analysis_state import AnalysisPhase
from crete.cv.errors import ClipNotReady, EstimatorUnavailable
from crete.services.narration import NarrationFailure, NarrationService
from conftest import FakeClip, FakeEstimator, FakeModel, make_pose, verdict


def make_controller(estimator=None, narration=None, **kwargs):
    estimator = estimator or FakeEstimator()
    controller = AnalysisController(
        estimator_factory=lambda: estimator,
        narration=narration,
        sample_fps=30,
        seek_timeout=1.0,
        **kwargs,
    )
    return controller, estimator


class TestExtraction:

    def test_full_run(self):
        progress = []
        controller, estimator = make_controller(
            on_change=lambda state: progress.append(state.progress),
        )
        clip = FakeClip(duration=2.0)
        controller.load_clip(clip)
        controller.set_trim(0.0, 1.0)

        trace = asyncio.run(controller.extract(clip))

        assert len(trace) == 31
        assert estimator.closed
        assert controller.state.phase is AnalysisPhase.EXTRACTED
        assert controller.state.trace is trace
        assert controller.state.progress == 100
        assert max(progress) == 100

    def test_cancel_mid_run_stops_estimation(self):
        controller = None

        def on_call(n):
            if n == 16:
                controller.cancel()

        estimator = FakeEstimator(on_call=on_call)
        controller, _ = make_controller(estimator)
        clip = FakeClip(duration=2.0)
        controller.load_clip(clip)
        controller.set_trim(0.0, 1.0)

        result = asyncio.run(controller.extract(clip))

        assert result is None
        assert len(estimator.calls) == 16
        assert estimator.closed
        assert controller.state.phase is AnalysisPhase.READY
        assert controller.state.trace is None

    def test_retrim_mid_run_abandons_old_run(self):
        controller = None

        def on_call(n):
            if n == 5:
                controller.set_trim(0.5, 1.5)

        estimator = FakeEstimator(on_call=on_call)
        controller, _ = make_controller(estimator)
        clip = FakeClip(duration=2.0)
        controller.load_clip(clip)

        assert asyncio.run(controller.extract(clip)) is None
        assert len(estimator.calls) == 5
        assert controller.state.phase is AnalysisPhase.READY
        assert (controller.state.trim_start, controller.state.trim_end) == (0.5, 1.5)
        assert controller.state.progress == 0

    def test_run_ids_increase(self):
        controller, _ = make_controller()
        clip = FakeClip(duration=0.5)
        controller.load_clip(clip)
        asyncio.run(controller.extract(clip))
        first = controller.state.run_id
        asyncio.run(controller.extract(clip))
        assert controller.state.run_id > first

    def test_estimator_unavailable_is_recorded_and_raised(self):
        def factory():
            raise EstimatorUnavailable("model file missing")

        controller = AnalysisController(estimator_factory=factory, sample_fps=30)
        clip = FakeClip(duration=1.0)
        controller.load_clip(clip)

        with pytest.raises(EstimatorUnavailable):
            asyncio.run(controller.extract(clip))
        assert controller.state.phase is AnalysisPhase.READY
        assert "model file missing" in controller.state.error

    def test_clip_not_ready(self):
        controller, estimator = make_controller()
        clip = FakeClip(duration=1.0, ready=False)
        controller.load_clip(clip)

        with pytest.raises(ClipNotReady):
            asyncio.run(controller.extract(clip))
        assert controller.state.error is not None
        assert estimator.calls == []
        assert estimator.closed

    def test_close_discards_everything(self):
        controller, _ = make_controller()
        clip = FakeClip(duration=0.5)
        controller.load_clip(clip)
        asyncio.run(controller.extract(clip))

        controller.close()

        assert controller.state.phase is AnalysisPhase.IDLE
        assert controller.state.trace is None

    def test_unexpected_estimator_error_is_recorded_and_raised(self):
        def pose_for(t):
            if t > 0.3:
                raise RuntimeError("landmarker crashed")
            return make_pose()

        controller, estimator = make_controller(FakeEstimator(pose_for=pose_for))
        clip = FakeClip(duration=1.0)
        controller.load_clip(clip)

        with pytest.raises(RuntimeError):
            asyncio.run(controller.extract(clip))
        assert controller.state.phase is AnalysisPhase.READY
        assert "landmarker crashed" in controller.state.error
        assert controller.state.trace is None
        assert estimator.closed

    def test_close_waits_for_pending_estimate(self):
        estimator = FakeEstimator(estimate_delay=0.05)
        controller, _ = make_controller(estimator)
        clip = FakeClip(duration=1.0)
        controller.load_clip(clip)

        async def close_mid_run():
            run = asyncio.ensure_future(controller.extract(clip))
            await asyncio.sleep(0.01)
            controller.close()
            assert not estimator.closed
            return await run

        assert asyncio.run(close_mid_run()) is None
        assert len(estimator.calls) == 1
        assert estimator.closed
        assert not estimator.closed_while_in_flight
        assert controller.state.phase is AnalysisPhase.IDLE


class TestNarration:

    def extracted_controller(self, model):
        controller, _ = make_controller(narration=NarrationService(model=model))
        clip = FakeClip(duration=1.0)
        controller.load_clip(clip)
        asyncio.run(controller.extract(clip))
        return controller

    def test_landed_verdict(self):
        controller = self.extracted_controller(FakeModel(verdict(55)))
        data = asyncio.run(controller.narrate(None, trick_hint="kickflip"))
        assert data["trickName"] == "Kickflip"
        assert data["isLanded"] is True
        assert controller.state.phase is AnalysisPhase.COMPLETE
        assert controller.state.result == data

    def test_score_at_threshold_is_not_landed(self):
        controller = self.extracted_controller(FakeModel(verdict(40)))
        data = asyncio.run(controller.narrate(None))
        assert data["isLanded"] is False

    def test_prompt_carries_trace_export(self):
        model = FakeModel(verdict(70))
        controller = self.extracted_controller(model)
        asyncio.run(controller.narrate(None, feedback_history=["Too harsh on height"]))
        prompt = model.prompts[0]
        assert "Timestamp,LeftAnkleY,RightAnkleY" in prompt
        assert "Too harsh on height" in prompt

    def test_failure_keeps_trace_and_retry_succeeds(self):
        controller = self.extracted_controller(FakeModel(RuntimeError("quota"), verdict(80)))
        trace = controller.state.trace

        with pytest.raises(NarrationFailure):
            asyncio.run(controller.narrate(None))
        assert controller.state.phase is AnalysisPhase.EXTRACTED
        assert controller.state.trace is trace
        assert controller.state.error == "Analysis failed, please retry"

        data = asyncio.run(controller.narrate(None))
        assert data["score"] == 80
        assert controller.state.phase is AnalysisPhase.COMPLETE

    def test_requires_trace(self):
        controller, _ = make_controller(narration=NarrationService(model=FakeModel()))
        with pytest.raises(NarrationFailure):
            asyncio.run(controller.narrate(None))
