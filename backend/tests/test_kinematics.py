"""Tests for board and body kinematics."""

import numpy as np
import pytest

from crete.config import BOARD_CENTER_OFFSET
from crete.cv.kinematics import LEFT_ANKLE_INDEX, RIGHT_ANKLE_INDEX, derive
from crete.cv.landmarks import PoseLandmark
from conftest import make_pose


class TestBoardCenter:

    def test_level_board_scenario(self):
        sample = derive(make_pose(left_ankle=(0.4, 0.6), right_ankle=(0.6, 0.6)), time=0.5)
        assert sample.board_center.x == pytest.approx(0.5)
        assert sample.board_center.y == pytest.approx(0.62)
        assert sample.board_angle_degrees == pytest.approx(0.0)
        assert sample.board_height == pytest.approx(0.38)
        assert sample.time == 0.5

    def test_center_is_ankle_midpoint_plus_offset(self):
        rng = np.random.default_rng(3)
        for _ in range(50):
            lx, ly, rx, ry = rng.uniform(0, 1, size=4)
            sample = derive(make_pose(left_ankle=(lx, ly), right_ankle=(rx, ry)), time=0.0)
            assert abs(sample.board_center.y - ((ly + ry) / 2 + 0.02)) < 1e-9
            assert abs(sample.board_height - (1 - sample.board_center.y)) < 1e-9

    def test_offset_is_configurable(self):
        sample = derive(make_pose(), time=0.0, board_offset=0.05)
        assert sample.board_center.y == pytest.approx(0.65)
        assert BOARD_CENTER_OFFSET == 0.02

    def test_tilted_board_angle(self):
        sample = derive(make_pose(left_ankle=(0.4, 0.6), right_ankle=(0.6, 0.8)), time=0.0)
        assert sample.board_angle_degrees == pytest.approx(45.0)

    def test_channels_follow_landmark_indices(self):
        assert LEFT_ANKLE_INDEX == 28
        assert RIGHT_ANKLE_INDEX == 27
        sample = derive(make_pose(left_ankle=(0.3, 0.7), right_ankle=(0.6, 0.5)), time=0.0)
        assert sample.left_ankle_y == pytest.approx(0.7)
        assert sample.right_ankle_y == pytest.approx(0.5)


class TestMissingLandmarks:

    def test_no_pose_gives_zeroed_sample(self):
        sample = derive(None, time=1.25)
        assert sample.time == 1.25
        assert sample.board_center is None
        assert not sample.has_board
        assert sample.left_ankle_y == 0.0
        assert sample.right_ankle_y == 0.0
        assert sample.board_height == 0.0
        assert sample.board_angle_degrees == 0.0
        assert sample.shoulder_rotation_degrees == 0.0

    def test_one_missing_ankle_drops_board_but_keeps_other_ankle(self):
        sample = derive(make_pose(left_ankle=None, right_ankle=(0.6, 0.55)), time=0.0)
        assert sample.board_center is None
        assert sample.board_height == 0.0
        assert sample.board_angle_degrees == 0.0
        assert sample.left_ankle_y == 0.0
        assert sample.right_ankle_y == pytest.approx(0.55)

    def test_short_landmark_array_counts_as_missing(self):
        pose = make_pose()
        truncated = type(pose).from_points(pose.points[:PoseLandmark.LEFT_ANKLE])
        sample = derive(truncated, time=0.0)
        assert sample.board_center is None


class TestShoulderRotation:

    def test_rotation_from_shoulder_line(self):
        sample = derive(make_pose(left_shoulder=(0.4, 0.3), right_shoulder=(0.6, 0.2)), time=0.0)
        expected = np.degrees(np.arctan2(-0.1, 0.2))
        assert sample.shoulder_rotation_degrees == pytest.approx(expected)

    def test_missing_shoulder_gives_zero(self):
        sample = derive(make_pose(right_shoulder=None), time=0.0)
        assert sample.shoulder_rotation_degrees == 0.0
        assert sample.board_center is not None
