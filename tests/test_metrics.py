import pytest
from hotserve.monitoring.metrics import MetricsTracker

@pytest.fixture
def metrics_tracker():
    return MetricsTracker(window=10)

class TestMetricsTracker:
    def test_summary_statistics(self, metrics_tracker):
        for value in (1.0, 2.0, 3.0, 4.0):
            metrics_tracker.record('build_time', value)

        stats = metrics_tracker.summary()['stats']['build_time']

        assert stats['count'] == 4
        assert stats['mean'] == pytest.approx(2.5)
        assert stats['last'] == 4.0
        assert 3.0 <= stats['p95'] <= 4.0

    def test_window_bounds_samples(self, metrics_tracker):
        for value in range(25):
            metrics_tracker.record('request_time', value)

        stats = metrics_tracker.summary()['stats']['request_time']

        assert stats['count'] == 25
        assert stats['mean'] == pytest.approx(sum(range(15, 25)) / 10)

    def test_errors_and_counters(self, metrics_tracker):
        metrics_tracker.record_error('build_error', 'first')
        metrics_tracker.record_error('build_error', 'second')
        metrics_tracker.increment('hot_patches', 3)

        summary = metrics_tracker.summary()

        assert summary['counters'] == {'build_error': 2, 'hot_patches': 3}
        assert summary['recent_errors']['build_error'] == ['first', 'second']
        assert summary['stats'] == {}
