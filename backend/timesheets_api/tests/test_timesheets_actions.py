"""
Tests for running entries and timesheet actions: active, recent, stop,
restart, duplicate, export and meta-fields.
"""
from datetime import datetime, timedelta, timezone

from fastapi import status

from timesheets_api.configuration import ACTIVE_ENTRIES_HARD_LIMIT, LONG_RUNNING_DURATION
from timesheets_api.database.models import Project, Timesheet

from .fixtures import create_timesheets
from .test_base import BaseAPITest

URL = "/api/timesheets"


def _hours_ago(hours: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=hours)


class TestActiveAndRecent(BaseAPITest):

    def test_active(self, client, db_session, user, teamlead, user_headers, project, activity):
        create_timesheets(db_session, user, project, activity, amount=3)
        running = create_timesheets(db_session, user, project, activity, start=_hours_ago(1), running=True)[0]
        create_timesheets(db_session, teamlead, project, activity, running=True)

        response = client.get(f"{URL}/active", headers=user_headers)

        self.assert_success_response(response)
        data = response.json()
        assert len(data) == 1
        assert data[0]["id"] == running.id
        assert data[0]["end"] is None
        assert data[0]["project"]["id"] == project.id
        assert data[0]["activity"]["id"] == activity.id

    def test_active_is_empty_without_running_entries(self, client, db_session, user, user_headers, project, activity):
        create_timesheets(db_session, user, project, activity, amount=2)
        assert client.get(f"{URL}/active", headers=user_headers).json() == []

    def test_recent_returns_latest_per_project_and_activity(self, client, db_session, user, teamlead, user_headers, customer, project, activity):
        second_project = Project(customer=customer, name="Second Project", visible=True)
        db_session.add(second_project)
        db_session.commit()

        first = create_timesheets(db_session, user, project, activity, amount=3)
        second = create_timesheets(
            db_session, user, second_project, activity, amount=2, start=datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
        )
        create_timesheets(db_session, teamlead, project, activity, amount=2)

        response = client.get(f"{URL}/recent", headers=user_headers)

        self.assert_success_response(response)
        assert [item["id"] for item in response.json()] == [second[-1].id, first[-1].id]

    def test_recent_with_size_and_begin(self, client, db_session, user, user_headers, customer, project, activity):
        second_project = Project(customer=customer, name="Second Project", visible=True)
        db_session.add(second_project)
        db_session.commit()
        create_timesheets(db_session, user, project, activity, amount=1)
        latest = create_timesheets(
            db_session, user, second_project, activity, start=datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
        )[0]

        assert len(client.get(f"{URL}/recent", params={"size": 1}, headers=user_headers).json()) == 1

        data = client.get(f"{URL}/recent", params={"begin": "2024-05-15T00:00:00"}, headers=user_headers).json()
        assert [item["id"] for item in data] == [latest.id]


class TestStopTimesheet(BaseAPITest):

    def test_stop(self, client, db_session, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity, start=_hours_ago(2), running=True)[0]

        response = client.patch(f"{URL}/{timesheet.id}/stop", headers=user_headers)

        self.assert_success_response(response)
        data = response.json()
        assert data["end"] is not None
        assert 7200 - 60 <= data["duration"] <= 7200 + 120

    def test_stop_already_stopped(self, client, db_session, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity)[0]

        response = client.patch(f"{URL}/{timesheet.id}/stop", headers=user_headers)

        self.assert_validation_error(response, "end", "Timesheet entry already stopped.")

    def test_stop_exceeding_long_running_duration(self, client, db_session, set_config, user, user_headers, project, activity):
        set_config(LONG_RUNNING_DURATION, 750)
        timesheet = create_timesheets(db_session, user, project, activity, start=_hours_ago(13), running=True)[0]

        response = client.patch(f"{URL}/{timesheet.id}/stop", headers=user_headers)

        self.assert_validation_error(response, "duration", "Maximum 12:30 hours allowed.")
        data = client.get(f"{URL}/{timesheet.id}", headers=user_headers).json()
        assert data["end"] is None

    def test_stop_other_users_entry(self, client, db_session, teamlead, user_headers, project, activity):
        timesheet = create_timesheets(db_session, teamlead, project, activity, start=_hours_ago(1), running=True)[0]
        self.assert_forbidden(client.patch(f"{URL}/{timesheet.id}/stop", headers=user_headers))

    def test_teamlead_stops_other_users_entry(self, client, db_session, user, teamlead_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity, start=_hours_ago(1), running=True)[0]
        self.assert_success_response(client.patch(f"{URL}/{timesheet.id}/stop", headers=teamlead_headers))

    def test_stop_not_found(self, client, user_headers):
        self.assert_not_found(client.patch(f"{URL}/999/stop", headers=user_headers))


class TestRestartTimesheet(BaseAPITest):

    def _source(self, db_session, user, project, activity):
        return create_timesheets(
            db_session, user, project, activity,
            description="Daily standup",
            tags=["meeting", "daily"],
            hourly_rate=99.0,
            meta={"metatestmock": ("T-42", True), "internal_note": ("secret", False)},
        )[0]

    def test_restart(self, client, db_session, user, user_headers, project, activity):
        source = self._source(db_session, user, project, activity)

        response = client.patch(f"{URL}/{source.id}/restart", headers=user_headers)

        self.assert_success_response(response)
        data = response.json()
        assert data["id"] != source.id
        assert data["end"] is None
        assert data["user"] == user.id
        assert data["project"] == project.id
        assert data["activity"] == activity.id
        assert data["description"] is None
        assert data["tags"] == []
        assert data["metaFields"] == []

    def test_restart_copy_all(self, client, db_session, user, user_headers, project, activity):
        source = self._source(db_session, user, project, activity)

        response = client.patch(f"{URL}/{source.id}/restart", params={"copy": "all"}, headers=user_headers)

        self.assert_success_response(response)
        data = response.json()
        assert data["description"] == "Daily standup"
        assert data["tags"] == ["meeting", "daily"]
        assert data["hourlyRate"] == 99.0
        assert data["metaFields"] == [{"name": "metatestmock", "value": "T-42"}]
        restarted = db_session.get(Timesheet, data["id"])
        assert restarted.get_meta_field("internal_note") is None

    def test_restart_with_begin(self, client, db_session, user, user_headers, project, activity):
        source = self._source(db_session, user, project, activity)

        response = client.patch(
            f"{URL}/{source.id}/restart", params={"begin": "2024-06-01T09:00:00"}, headers=user_headers
        )

        self.assert_success_response(response)
        assert response.json()["begin"] == "2024-06-01T09:00:00+0000"

    def test_restart_stops_running_entries(self, client, db_session, user, user_headers, project, activity):
        source = self._source(db_session, user, project, activity)
        running = create_timesheets(db_session, user, project, activity, start=_hours_ago(1), running=True)[0]

        response = client.patch(f"{URL}/{source.id}/restart", headers=user_headers)

        self.assert_success_response(response)
        active = client.get(f"{URL}/active", headers=user_headers).json()
        assert [item["id"] for item in active] == [response.json()["id"]]
        db_session.refresh(running)
        assert running.end is not None

    def test_hard_limit_allows_multiple_running_entries(self, client, db_session, set_config, user, user_headers, project, activity):
        set_config(ACTIVE_ENTRIES_HARD_LIMIT, 2)
        source = self._source(db_session, user, project, activity)
        create_timesheets(db_session, user, project, activity, start=_hours_ago(1), running=True)

        client.patch(f"{URL}/{source.id}/restart", headers=user_headers)

        assert len(client.get(f"{URL}/active", headers=user_headers).json()) == 2

    def test_teamlead_restart_belongs_to_teamlead(self, client, db_session, user, teamlead, teamlead_headers, project, activity):
        source = self._source(db_session, user, project, activity)

        response = client.patch(f"{URL}/{source.id}/restart", headers=teamlead_headers)

        self.assert_success_response(response)
        assert response.json()["user"] == teamlead.id

    def test_restart_other_users_entry(self, client, db_session, teamlead, user_headers, project, activity):
        source = self._source(db_session, teamlead, project, activity)
        self.assert_forbidden(client.patch(f"{URL}/{source.id}/restart", headers=user_headers))

    def test_restart_not_found(self, client, user_headers):
        self.assert_not_found(client.patch(f"{URL}/999/restart", headers=user_headers))


class TestDuplicateTimesheet(BaseAPITest):

    def test_duplicate(self, client, db_session, user, admin_headers, project, activity):
        source = create_timesheets(
            db_session, user, project, activity,
            exported=True,
            description="Review",
            tags=["review"],
            fixed_rate=120.0,
            meta={"metatestmock": ("T-1", True), "internal_note": ("secret", False)},
        )[0]

        response = client.patch(f"{URL}/{source.id}/duplicate", headers=admin_headers)

        self.assert_success_response(response)
        data = response.json()
        assert data["id"] != source.id
        assert data["user"] == user.id
        assert data["begin"] == "2024-05-01T08:00:00+0000"
        assert data["end"] == "2024-05-01T09:00:00+0000"
        assert data["description"] == "Review"
        assert data["tags"] == ["review"]
        assert data["fixedRate"] == 120.0
        assert data["rate"] == 120.0
        assert data["exported"] is False
        copy = db_session.get(Timesheet, data["id"])
        assert copy.get_meta_field("internal_note").value == "secret"

    def test_duplicate_exported_entry_requires_admin(self, client, db_session, user, user_headers, project, activity):
        source = create_timesheets(db_session, user, project, activity, exported=True)[0]
        self.assert_forbidden(client.patch(f"{URL}/{source.id}/duplicate", headers=user_headers))

    def test_duplicate_own_entry(self, client, db_session, user, user_headers, project, activity):
        source = create_timesheets(db_session, user, project, activity)[0]
        response = client.patch(f"{URL}/{source.id}/duplicate", headers=user_headers)
        self.assert_success_response(response)
        assert db_session.query(Timesheet).count() == 2


class TestExportTimesheet(BaseAPITest):

    def test_toggle_export(self, client, db_session, user, teamlead_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity)[0]

        response = client.patch(f"{URL}/{timesheet.id}/export", headers=teamlead_headers)
        self.assert_success_response(response)
        assert response.json()["exported"] is True

        response = client.patch(f"{URL}/{timesheet.id}/export", headers=teamlead_headers)
        assert response.json()["exported"] is False

    def test_export_requires_permission(self, client, db_session, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity)[0]
        self.assert_forbidden(client.patch(f"{URL}/{timesheet.id}/export", headers=user_headers))

    def test_export_not_found(self, client, teamlead_headers):
        self.assert_not_found(client.patch(f"{URL}/999/export", headers=teamlead_headers))


class TestTimesheetMeta(BaseAPITest):

    def test_set_meta(self, client, db_session, meta_fields, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity)[0]

        response = client.patch(
            f"{URL}/{timesheet.id}/meta", json={"name": "metatestmock", "value": "another,testing,bar"},
            headers=user_headers
        )

        self.assert_success_response(response)
        assert response.json()["metaFields"] == [{"name": "metatestmock", "value": "another,testing,bar"}]

    def test_set_meta_overwrites_value(self, client, db_session, meta_fields, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity, meta={"foobar": ("old", True)})[0]

        data = client.patch(
            f"{URL}/{timesheet.id}/meta", json={"name": "foobar", "value": "new"}, headers=user_headers
        ).json()

        assert data["metaFields"] == [{"name": "foobar", "value": "new"}]

    def test_set_hidden_meta(self, client, db_session, meta_fields, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity)[0]

        response = client.patch(
            f"{URL}/{timesheet.id}/meta", json={"name": "internal_note", "value": "secret"}, headers=user_headers
        )

        self.assert_success_response(response)
        assert response.json()["metaFields"] == []
        db_session.refresh(timesheet)
        assert timesheet.get_meta_field("internal_note").value == "secret"

    def test_set_meta_missing_name(self, client, db_session, meta_fields, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity)[0]

        response = client.patch(f"{URL}/{timesheet.id}/meta", json={"value": "X"}, headers=user_headers)

        self.assert_error_response(
            response, status.HTTP_400_BAD_REQUEST,
            'Parameter "name" of value "NULL" violated a constraint "This value should not be null."'
        )

    def test_set_meta_missing_value(self, client, db_session, meta_fields, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity)[0]

        response = client.patch(f"{URL}/{timesheet.id}/meta", json={"name": "foobar"}, headers=user_headers)

        self.assert_error_response(
            response, status.HTTP_400_BAD_REQUEST,
            'Parameter "value" of value "NULL" violated a constraint "This value should not be null."'
        )

    def test_set_unknown_meta(self, client, db_session, meta_fields, user, user_headers, project, activity):
        timesheet = create_timesheets(db_session, user, project, activity)[0]

        response = client.patch(
            f"{URL}/{timesheet.id}/meta", json={"name": "unknown", "value": "X"}, headers=user_headers
        )

        self.assert_error_response(response, status.HTTP_500_INTERNAL_SERVER_ERROR, "Unknown meta-field requested")

    def test_set_meta_not_found(self, client, meta_fields, user_headers):
        response = client.patch(f"{URL}/999/meta", json={"name": "foobar", "value": "X"}, headers=user_headers)
        self.assert_not_found(response)
