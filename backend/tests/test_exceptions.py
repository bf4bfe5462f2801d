from planbook.core.exceptions import (
    AccessDeniedError,
    AppError,
    ResourceNotFoundError,
    ScheduleConflictError,
    ScheduleGenerationError,
)


def test_schedule_generation_error_structure():
    err = ScheduleGenerationError(message="Test error", details={"errors": ["No periods assigned to courses"]})
    assert err.status_code == 400
    assert err.message == "Test error"
    assert err.details == {"errors": ["No periods assigned to courses"]}
    assert isinstance(err, AppError)


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.details == {}


def test_resource_errors_carry_identity():
    missing = ResourceNotFoundError("Schedule", 12)
    assert missing.status_code == 404
    assert missing.message == "Schedule with id 12 not found"
    assert missing.details == {"resource_type": "Schedule", "resource_id": "12"}

    denied = AccessDeniedError("Course", 3)
    assert denied.status_code == 403
    assert denied.details["resource_type"] == "Course"


def test_conflict_error_status():
    assert ScheduleConflictError("Cell already occupied").status_code == 409


def test_app_errors_render_message_and_details(client, auth_headers):
    response = client.get("/api/schedules/999", headers=auth_headers)
    assert response.status_code == 404
    body = response.json()
    assert body["message"] == "Schedule with id 999 not found"
    assert body["details"]["resource_id"] == "999"
