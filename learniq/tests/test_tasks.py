from learniq.tasks import DAILY_STREAK_CHECK, WEEKLY_FREEZE_RESET, celery_app


def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule

    daily = schedule["daily-streak-check"]
    assert daily["task"] == DAILY_STREAK_CHECK
    assert daily["schedule"].hour == {1}
    assert daily["schedule"].minute == {0}

    weekly = schedule["weekly-freeze-reset"]
    assert weekly["task"] == WEEKLY_FREEZE_RESET
    assert weekly["schedule"].day_of_week == {1}


def test_tasks_are_registered():
    assert DAILY_STREAK_CHECK in celery_app.tasks
    assert WEEKLY_FREEZE_RESET in celery_app.tasks
