import pytest
import schedule

from rss_relay import scheduler


def test_run_safely_reports_success():
    calls = []

    assert scheduler.run_safely(lambda: calls.append(1)) is True
    assert calls == [1]


def test_run_safely_logs_and_swallows_errors(caplog):
    caplog.set_level("ERROR")

    def boom():
        raise RuntimeError("feeds exploded")

    assert scheduler.run_safely(boom) is False
    assert "Scheduled run failed" in caplog.text


def test_run_forever_runs_immediately_and_keeps_going_after_failures():
    runs = []

    def job():
        runs.append(len(runs))
        if len(runs) == 1:
            raise RuntimeError("first run fails")

    sched = schedule.Scheduler()
    iterations = iter(range(3))

    def should_continue():
        return next(iterations, None) is not None

    def fake_sleep(seconds):
        # Pretend the interval has elapsed so the job is due again.
        for job_ in sched.jobs:
            job_.next_run = job_.next_run.replace(year=2000)

    scheduler.run_forever(
        job,
        interval_minutes=30,
        scheduler=sched,
        sleep=fake_sleep,
        should_continue=should_continue,
    )

    assert len(runs) == 3
    assert sched.jobs[0].interval == 1800
    assert sched.jobs[0].unit == "seconds"


def test_run_forever_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        scheduler.run_forever(lambda: None, interval_minutes=0)
