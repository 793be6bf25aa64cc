"""Tests for narration prompt building and response parsing."""

import json

import pytest

from crete.cv.frame_sampler import TrimWindow
from crete.services.narration import (
    NarrationFailure, NarrationResult, NarrationService, build_prompt, parse_response,
    result_to_dict,
)
from conftest import FakeModel, verdict


class TestParseResponse:

    def test_plain_json(self):
        result = parse_response(verdict(72))
        assert result.trickName == "Kickflip"
        assert result.score == 72

    def test_fenced_json(self):
        result = parse_response(f"Here you go:\n```json\n{verdict(60)}\n```")
        assert result.score == 60

    def test_bare_fence(self):
        result = parse_response(f"```\n{verdict(30)}\n```")
        assert result.score == 30

    def test_invalid_json(self):
        with pytest.raises(NarrationFailure, match="not JSON"):
            parse_response("the skater did a kickflip")

    def test_empty_text(self):
        with pytest.raises(NarrationFailure):
            parse_response("")

    def test_non_object(self):
        with pytest.raises(NarrationFailure):
            parse_response("[1, 2, 3]")

    def test_missing_required_field(self):
        with pytest.raises(NarrationFailure, match="validation"):
            parse_response(json.dumps({"trickName": "Ollie", "confidence": 0.5}))

    def test_score_out_of_range(self):
        payload = json.loads(verdict(50))
        payload["score"] = 140
        with pytest.raises(NarrationFailure):
            parse_response(json.dumps(payload))

    def test_percentage_confidence_is_normalized(self):
        payload = json.loads(verdict(50))
        payload["confidence"] = 85
        assert parse_response(json.dumps(payload)).confidence == pytest.approx(0.85)


class TestPrompt:

    def test_includes_window_and_csv(self):
        prompt = build_prompt(TrimWindow(1.0, 2.5), "Timestamp,LeftAnkleY\n1.00,0.500")
        assert "1.00s to 2.50s" in prompt
        assert "1.00,0.500" in prompt
        assert "attempted" not in prompt

    def test_includes_hint_and_history(self):
        prompt = build_prompt(
            TrimWindow(0.0, 1.0), "", trick_hint="heelflip",
            feedback_history=["Score felt low", "Wrong trick name"],
        )
        assert "attempted: heelflip" in prompt
        assert "- Score felt low" in prompt
        assert "- Wrong trick name" in prompt


class TestNarrationService:

    def test_analyze_with_injected_model(self):
        model = FakeModel(f"```json\n{verdict(90)}\n```")
        service = NarrationService(model=model)
        result = service.analyze(None, "video/mp4", TrimWindow(0.0, 1.0), "Timestamp")
        assert result.score == 90
        assert len(model.prompts) == 1

    def test_clip_is_sent_inline_before_prompt(self):
        model = FakeModel(verdict(65))
        service = NarrationService(model=model)
        service.analyze(b"\x00\x01video", "video/quicktime", TrimWindow(0.0, 1.0), "Timestamp")
        video, prompt = model.contents[0]
        assert video == {"mime_type": "video/quicktime", "data": b"\x00\x01video"}
        assert "Timestamp" in prompt

    def test_model_error_becomes_failure(self):
        service = NarrationService(model=FakeModel(ConnectionError("offline")))
        with pytest.raises(NarrationFailure, match="offline"):
            service.analyze(None, "video/mp4", TrimWindow(0.0, 1.0), "Timestamp")

    def test_missing_api_key(self):
        service = NarrationService(api_key="")
        with pytest.raises(NarrationFailure, match="API key"):
            service.analyze(None, "video/mp4", TrimWindow(0.0, 1.0), "Timestamp")


def test_landed_flag_uses_threshold():
    result = NarrationResult.model_validate(json.loads(verdict(41)))
    assert result_to_dict(result)["isLanded"] is True
    assert result_to_dict(result, threshold=50)["isLanded"] is False
