"""Tests for the cron job scheduler."""

import pytest

from forge_engine.scheduler.scheduler import JobScheduler


async def noop(**kwargs) -> None:
    pass


class TestJobScheduler:
    """Tests for JobScheduler."""

    def test_add_and_list_jobs(self) -> None:
        scheduler = JobScheduler()
        job_id = scheduler.add_cron_job(
            "agent:a1:0", "0 9 * * 1-5", noop, kwargs={"entity_id": "a1"}
        )

        assert job_id == "agent:a1:0"
        jobs = scheduler.list_jobs()
        assert [job["id"] for job in jobs] == ["agent:a1:0"]
        assert jobs[0]["name"] == "agent:a1:0"

    def test_add_replaces_existing_job(self) -> None:
        scheduler = JobScheduler()
        scheduler.add_cron_job("job", "0 9 * * *", noop)
        scheduler.add_cron_job("job", "30 17 * * *", noop, name="evening")

        jobs = scheduler.list_jobs()
        assert len(jobs) == 1
        assert jobs[0]["name"] == "evening"

    def test_invalid_cron_raises(self) -> None:
        scheduler = JobScheduler()
        with pytest.raises(ValueError):
            scheduler.add_cron_job("job", "every tuesday", noop)
        assert scheduler.list_jobs() == []

    def test_remove_job(self) -> None:
        scheduler = JobScheduler()
        scheduler.add_cron_job("job", "0 9 * * *", noop)

        assert scheduler.remove_job("job") is True
        assert scheduler.remove_job("job") is False
        assert scheduler.list_jobs() == []

    async def test_start_and_stop(self) -> None:
        scheduler = JobScheduler(timezone="UTC")
        scheduler.add_cron_job("job", "0 9 * * *", noop)

        await scheduler.start()
        assert scheduler.running
        assert scheduler.list_jobs()[0]["next_run_time"] is not None

        await scheduler.stop()
        assert not scheduler.running
