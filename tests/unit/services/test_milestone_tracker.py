from decimal import Decimal

from services.notification_relay.src.milestone_tracker import (
    TRANSACTION_MILESTONES,
    VOLUME_MILESTONES,
    MilestoneTracker,
)


class TestMilestoneTracker:
    """Test suite for ladder crossing detection"""

    def test_crossing_returns_threshold(self, milestone_tracker: MilestoneTracker) -> None:
        crossed = milestone_tracker.check_crossing("u1", "volume", 900, 1200, VOLUME_MILESTONES)
        assert crossed == Decimal("1000")
        assert milestone_tracker.high_water_mark("u1", "volume") == Decimal("1000")

    def test_worked_example_sequence(self, milestone_tracker) -> None:
        assert milestone_tracker.check_crossing("u1", "volume", 900, 1200, VOLUME_MILESTONES) == 1000
        assert milestone_tracker.check_crossing("u1", "volume", 1200, 1300, VOLUME_MILESTONES) is None
        assert milestone_tracker.check_crossing("u1", "volume", 1300, 6000, VOLUME_MILESTONES) == 5000

    def test_exact_threshold_counts_as_crossed(self, milestone_tracker) -> None:
        assert milestone_tracker.check_crossing("u1", "transactions", 9, 10, TRANSACTION_MILESTONES) == 10

    def test_starting_on_threshold_is_not_a_crossing(self, milestone_tracker) -> None:
        assert milestone_tracker.check_crossing("u1", "transactions", 10, 11, TRANSACTION_MILESTONES) is None

    def test_big_jump_notifies_lowest_only(self, milestone_tracker) -> None:
        crossed = milestone_tracker.check_crossing("u1", "volume", 0, 250000, VOLUME_MILESTONES)
        assert crossed == 1000
        assert milestone_tracker.check_crossing("u1", "volume", 250000, 300000, VOLUME_MILESTONES) is None

    def test_monotonic_rise_notifies_each_threshold_once_in_order(self, milestone_tracker) -> None:
        values = [0, 500, 1500, 1500, 4000, 9000, 12000, 30000, 30000, 60000, 150000]
        notified = []
        for old, new in zip(values, values[1:]):
            crossed = milestone_tracker.check_crossing("u1", "volume", old, new, VOLUME_MILESTONES)
            if crossed is not None:
                notified.append(int(crossed))
        assert notified == [1000, 5000, 10000, 25000, 50000, 100000]

    def test_redelivered_update_does_not_renotify(self, milestone_tracker) -> None:
        assert milestone_tracker.check_crossing("u1", "volume", 900, 1200, VOLUME_MILESTONES) == 1000
        assert milestone_tracker.check_crossing("u1", "volume", 900, 1200, VOLUME_MILESTONES) is None

    def test_decrease_is_never_a_crossing(self, milestone_tracker) -> None:
        assert milestone_tracker.check_crossing("u1", "volume", 6000, 900, VOLUME_MILESTONES) is None
        assert len(milestone_tracker) == 0

    def test_subjects_and_metrics_are_independent(self, milestone_tracker) -> None:
        assert milestone_tracker.check_crossing("u1", "volume", 0, 1000, VOLUME_MILESTONES) == 1000
        assert milestone_tracker.check_crossing("u2", "volume", 0, 1000, VOLUME_MILESTONES) == 1000
        assert milestone_tracker.check_crossing("u1", "transactions", 0, 10, TRANSACTION_MILESTONES) == 10

    def test_unsorted_ladder_is_evaluated_ascending(self, milestone_tracker) -> None:
        assert milestone_tracker.check_crossing("u1", "volume", 0, 6000, (5000, 1000)) == 1000

    def test_sweep_forgets_stale_marks(self, milestone_tracker, clock) -> None:
        milestone_tracker.check_crossing("u1", "volume", 900, 1200, VOLUME_MILESTONES)
        clock.advance(1800)
        milestone_tracker.check_crossing("u2", "volume", 900, 1200, VOLUME_MILESTONES)
        clock.advance(1801)

        assert milestone_tracker.sweep() == 1
        assert milestone_tracker.high_water_mark("u1", "volume") is None
        assert milestone_tracker.high_water_mark("u2", "volume") == 1000

    def test_sweep_age_counts_from_last_update(self, milestone_tracker, clock) -> None:
        milestone_tracker.check_crossing("u1", "volume", 900, 1200, VOLUME_MILESTONES)
        clock.advance(3000)
        milestone_tracker.check_crossing("u1", "volume", 1200, 5000, VOLUME_MILESTONES)
        clock.advance(3000)
        assert milestone_tracker.sweep() == 0
        assert milestone_tracker.high_water_mark("u1", "volume") == 5000
