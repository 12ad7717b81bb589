"""
Concurrency Throttle Tests
==========================
"""

import pytest

from face_relay.stream.throttle import ConcurrencyThrottle


class TestConcurrencyThrottle:
    """Tests for admission control."""

    @pytest.mark.parametrize("cap, expected", [(0, 1), (1, 1), (3, 3)])
    def test_admits_exactly_cap_without_serialization(self, cap, expected):
        """max(1, cap) admissions, then rejections."""
        throttle = ConcurrencyThrottle(max_in_flight=cap, serialize=False)

        admitted = sum(throttle.admit() for _ in range(expected + 5))

        assert admitted == expected
        assert throttle.in_flight == expected
        assert throttle.rejected_count == 5

    def test_processing_flag_blocks_second_admission(self):
        throttle = ConcurrencyThrottle(max_in_flight=4, serialize=True)

        assert throttle.admit()
        assert throttle.processing
        assert not throttle.admit()
        assert throttle.in_flight == 1

    def test_release_clears_flag_and_gauge(self):
        throttle = ConcurrencyThrottle(max_in_flight=4)
        throttle.admit()

        throttle.release()

        assert not throttle.processing
        assert throttle.in_flight == 0
        assert throttle.admit()

    def test_release_without_admit_does_not_go_negative(self):
        throttle = ConcurrencyThrottle()

        throttle.release()

        assert throttle.in_flight == 0

    def test_flag_stays_set_while_others_in_flight(self):
        throttle = ConcurrencyThrottle(max_in_flight=2, serialize=False)
        throttle.admit()
        throttle.admit()

        throttle.release()

        assert throttle.processing
        assert throttle.in_flight == 1

    def test_metrics(self):
        throttle = ConcurrencyThrottle(max_in_flight=1)
        throttle.admit()
        throttle.admit()

        assert throttle.metrics() == {
            "in_flight": 1,
            "max_in_flight": 1,
            "admitted": 1,
            "rejected": 1,
        }
