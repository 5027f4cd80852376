"""
Tests for the training load report built from stored workouts.
"""
from datetime import date, timedelta

import pytest

from trainload.services.ingest.normalizer import map_payload_to_workout
from trainload.services.ingest.store import WorkoutStore
from trainload.services.reporting import TrainingLoadReportService

TODAY = date(2024, 3, 13)
CURRENT_WEEK = date(2024, 3, 10)


def _run(workout_id, day, user_id="user-1"):
    """5 km in 60 min at avg HR 140 / max 178 / rest 50: session load 38.56."""
    start = f"{day.isoformat()}T07:00:00Z"
    end = f"{day.isoformat()}T08:00:00Z"
    return map_payload_to_workout(
        {
            "id": workout_id,
            "metadata": {"start_time": start, "end_time": end, "name": "Run"},
            "distance_data": {"summary": {"distance_meters": 5000}},
            "heart_rate_data": {
                "summary": {"avg_hr_bpm": 140, "max_hr_bpm": 178, "resting_hr_bpm": 50}
            },
        },
        provider="garmin",
        external_user_id="terra-1",
        local_user_id=user_id,
    )


async def _seed(db, workouts):
    await WorkoutStore(db).upsert_many(workouts)


class TestTrainingLoadReport:

    async def test_steady_weeks(self, db, settings):
        await _seed(db, [
            _run(f"w-{weeks_back}", CURRENT_WEEK - timedelta(weeks=weeks_back) + timedelta(days=1))
            for weeks_back in range(5)
        ])

        report = await TrainingLoadReportService(db, settings).build("user-1", today=TODAY)

        assert report.summary.acute_load == 38.56
        assert report.summary.chronic_load == 38.56
        assert report.summary.ratio == 1.0
        assert report.summary.status.tone == "positive"
        assert report.summary.last_updated == "2024-03-11"
        assert len(report.workouts) == 5

    async def test_other_users_excluded(self, db, settings):
        await _seed(db, [_run("w-1", TODAY), _run("w-2", TODAY, user_id="user-2")])

        report = await TrainingLoadReportService(db, settings).build("user-1", today=TODAY)

        assert report.summary.acute_load == 38.56
        assert report.summary.ratio == 0.0

    async def test_empty(self, db, settings):
        report = await TrainingLoadReportService(db, settings).build("nobody", today=TODAY)

        assert report.summary.ratio is None
        assert report.to_dict()["summary"]["status"]["tone"] == "muted"

    async def test_miles(self, db, settings):
        await _seed(db, [_run("w-1", TODAY)])

        report = await TrainingLoadReportService(db, settings).build("user-1", today=TODAY, unit="mi")

        assert report.summary.acute_load == pytest.approx(18.08, abs=0.02)

    async def test_default_unit_from_settings(self, db, settings):
        await _seed(db, [_run("w-1", TODAY)])
        config = settings.model_copy(update={"DEFAULT_DISTANCE_UNIT": "mi"})

        report = await TrainingLoadReportService(db, config).build("user-1", today=TODAY)

        assert report.summary.acute_load == pytest.approx(18.08, abs=0.02)

    async def test_unsupported_unit(self, db, settings):
        with pytest.raises(ValueError):
            await TrainingLoadReportService(db, settings).build("user-1", unit="yd")

    async def test_row_cap(self, db, settings):
        await _seed(db, [_run(f"w-{i}", TODAY - timedelta(days=i)) for i in range(3)])
        config = settings.model_copy(update={"WORKOUT_ROW_CAP": 2})

        report = await TrainingLoadReportService(db, config).build("user-1", today=TODAY)

        assert len(report.workouts) == 2
        assert report.summary.last_updated == TODAY.isoformat()
