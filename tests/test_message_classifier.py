"""Tests for post classification."""

from badminton_schedule.services.message_classifier import (
    MessageKind,
    classify_message,
    count_weekdays,
    is_weekly_schedule,
)


class TestMessageClassifier:

    def test_single_session(self, single_post):
        assert classify_message(single_post) == MessageKind.SINGLE

    def test_weekly_schedule(self, weekly_post):
        assert classify_message(weekly_post) == MessageKind.WEEKLY

    def test_week_phrase(self):
        assert is_weekly_schedule("Расписание тренировок на следующую неделю")

    def test_date_range(self):
        assert is_weekly_schedule("Тренировки 10.03-16.03")

    def test_two_parenthesized_dates(self):
        assert is_weekly_schedule("Игровая (11.03)\nГрупповая (13.03)")

    def test_single_weekday_is_not_weekly(self):
        assert not is_weekly_schedule("В среду 12.03 игровая 19:00-21:00")

    def test_count_weekdays(self):
        assert count_weekdays("Понедельник, среда и пятница") == 3

    def test_unparseable(self):
        assert classify_message("Поздравляем всех с праздником!") == MessageKind.UNPARSEABLE
        assert classify_message("") == MessageKind.UNPARSEABLE
