WEEK = {"start_date": "2024-09-02", "end_date": "2024-09-06"}


def create_course_with_lessons(client, headers, titles=("L1", "L2", "L3")):
    """One topic holding a direct lesson, a subtopic with a lesson, then more direct lessons."""
    course = client.post("/api/courses", json={"title": "Biology"}, headers=headers)
    assert course.status_code == 201
    course_id = course.json()["id"]
    topic = client.post(f"/api/courses/{course_id}/topics", json={"title": "Cells", "sort_order": 0}, headers=headers)
    assert topic.status_code == 201
    topic_id = topic.json()["id"]
    sub_topic = client.post(f"/api/topics/{topic_id}/subtopics", json={"title": "Membranes", "sort_order": 1}, headers=headers)
    assert sub_topic.status_code == 201

    lesson_ids = []
    for index, title in enumerate(titles):
        if index == 1:
            payload = {"title": title, "sub_topic_id": sub_topic.json()["id"], "sort_order": 0}
        else:
            payload = {"title": title, "topic_id": topic_id, "sort_order": index * 2}
        response = client.post("/api/lessons", json=payload, headers=headers)
        assert response.status_code == 201
        lesson_ids.append(response.json()["id"])
    return course_id, topic_id, lesson_ids


def create_configuration(client, headers, course_id, **overrides):
    payload = {
        "title": "Fall term",
        "periods_per_day": 2,
        "teaching_days": ["monday", "tue", "Wednesday", "THURSDAY", "Friday"],
        "period_assignments": [
            {"period": 1, "course_id": course_id},
            {"period": 2, "special_period_type": "Lunch", "notes": "Cafeteria"},
        ],
        **WEEK,
    }
    payload.update(overrides)
    response = client.post("/api/configurations", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def period_events(events, period):
    return [event for event in events if event["period"] == period]


def test_lessons_are_listed_in_sequence(client, auth_headers):
    course_id, _, lesson_ids = create_course_with_lessons(client, auth_headers)
    response = client.get(f"/api/courses/{course_id}/lessons", headers=auth_headers)
    assert response.status_code == 200
    assert [item["lesson_id"] for item in response.json()] == lesson_ids
    assert [item["position"] for item in response.json()] == [0, 1, 2]


def test_configuration_normalizes_teaching_days(client, auth_headers):
    course_id, _, _ = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)
    assert configuration["teaching_days"] == ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
    period_one = configuration["period_assignments"][0]
    assert period_one["teaching_days"] == configuration["teaching_days"]
    assert period_one["background_color"] == "#2196F3"


def test_configuration_rejects_course_and_special_period_together(client, auth_headers):
    course_id, _, _ = create_course_with_lessons(client, auth_headers)
    response = client.post(
        "/api/configurations",
        json={
            "title": "Bad",
            "periods_per_day": 1,
            "period_assignments": [{"period": 1, "course_id": course_id, "special_period_type": "Lunch"}],
            **WEEK,
        },
        headers=auth_headers,
    )
    assert response.status_code == 422


def test_validate_and_preview(client, auth_headers):
    course_id, _, _ = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)

    validation = client.get(f"/api/configurations/{configuration['id']}/validate", headers=auth_headers)
    assert validation.status_code == 200
    body = validation.json()
    assert body["is_valid"] is True
    assert body["can_generate"] is True
    assert body["errors"] == []
    assert body["stats"]["course_assignments"] == 1
    assert body["stats"]["special_period_assignments"] == 1

    preview = client.get(f"/api/configurations/{configuration['id']}/preview", headers=auth_headers)
    assert preview.status_code == 200
    assert preview.json()["estimated_events"] == 10
    assert preview.json()["teaching_days_in_range"] == 5


def test_generate_week_then_special_day_shifts_lessons(client, auth_headers):
    course_id, _, lesson_ids = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)

    generated = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers)
    assert generated.status_code == 200, generated.text
    body = generated.json()
    assert body["success"] is True
    assert body["total_events"] == 10
    assert body["events_by_period"] == {"1": 5, "2": 5}
    assert body["events_by_type"] == {"Error": 2, "Lesson": 3, "Lunch": 5}

    period_one = period_events(body["events"], 1)
    assert [event["lesson_id"] for event in period_one] == [*lesson_ids, None, None]
    assert [event["schedule_sort"] for event in period_one[:3]] == [0, 1, 2]
    assert [event["event_type"] for event in period_one[3:]] == ["Error", "Error"]
    assert period_one[0]["title"] == "L1"
    assert all(event["event_category"] == "SpecialPeriod" for event in period_events(body["events"], 2))

    schedule_id = body["schedule_id"]
    special = client.post(
        f"/api/schedules/{schedule_id}/special-days",
        json={"date": "2024-09-04", "periods": [1], "event_type": "Assembly", "title": "Pep rally"},
        headers=auth_headers,
    )
    assert special.status_code == 201, special.text
    assert special.json()["background_color"] == "#e74c3c"

    events = client.get(f"/api/schedules/{schedule_id}/events", headers=auth_headers).json()
    period_one = period_events(events, 1)
    assert [(event["date"], event["event_type"], event["lesson_id"]) for event in period_one] == [
        ("2024-09-02", "Lesson", lesson_ids[0]),
        ("2024-09-03", "Lesson", lesson_ids[1]),
        ("2024-09-04", "Assembly", None),
        ("2024-09-05", "Lesson", lesson_ids[2]),
        ("2024-09-06", "Error", None),
    ]
    assert period_one[2]["title"] == "Pep rally"
    assert period_one[3]["schedule_sort"] == 2
    # Lunch is untouched by a special day that only covers period 1.
    assert period_events(events, 2)[2]["event_type"] == "Lunch"

    ranged = client.get(
        f"/api/schedules/{schedule_id}/events",
        params={"start_date": "2024-09-04", "end_date": "2024-09-04"},
        headers=auth_headers,
    )
    assert [event["period"] for event in ranged.json()] == [1, 2]

    special_day_id = special.json()["id"]
    deleted = client.delete(f"/api/schedules/{schedule_id}/special-days/{special_day_id}", headers=auth_headers)
    assert deleted.status_code == 204
    events = client.get(f"/api/schedules/{schedule_id}/events", headers=auth_headers).json()
    assert period_events(events, 1)[2]["lesson_id"] == lesson_ids[2]


def test_regeneration_is_idempotent(client, auth_headers):
    course_id, _, _ = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)
    first = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()
    second = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()

    def fingerprint(events):
        return [(e["date"], e["period"], e["event_type"], e["lesson_id"], e["schedule_sort"]) for e in events]

    assert first["schedule_id"] == second["schedule_id"]
    assert fingerprint(first["events"]) == fingerprint(second["events"])
    schedules = client.get("/api/schedules", headers=auth_headers).json()
    assert len(schedules) == 1


def test_generate_refuses_configuration_without_course(client, auth_headers):
    response = client.post(
        "/api/configurations",
        json={
            "title": "Duties only",
            "periods_per_day": 1,
            "period_assignments": [{"period": 1, "special_period_type": "HallDuty"}],
            **WEEK,
        },
        headers=auth_headers,
    )
    configuration_id = response.json()["id"]

    generated = client.post(f"/api/configurations/{configuration_id}/generate", headers=auth_headers)
    assert generated.status_code == 400
    body = generated.json()
    assert body["message"] == "Schedule configuration is not valid for generation"
    assert body["details"]["errors"] == ["No periods assigned to courses"]


def test_lesson_change_rebuilds_schedule(client, auth_headers, job_queue):
    course_id, topic_id, lesson_ids = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)
    schedule_id = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()["schedule_id"]

    added = client.post("/api/lessons", json={"title": "L4", "topic_id": topic_id, "sort_order": 9}, headers=auth_headers)
    assert added.status_code == 201
    assert job_queue.enqueued_keys == [f"schedule-rebuild-{schedule_id}"]

    status = client.get(f"/api/schedules/{schedule_id}/rebuild", headers=auth_headers).json()
    assert status["state"] == "Succeeded"
    assert status["in_progress"] is False
    assert status["reason"] == "lesson-created"

    events = client.get(f"/api/schedules/{schedule_id}/events", headers=auth_headers).json()
    assert [event["lesson_id"] for event in period_events(events, 1)] == [*lesson_ids, added.json()["id"], None]

    archived = client.put(f"/api/lessons/{lesson_ids[0]}", json={"archived": True}, headers=auth_headers)
    assert archived.status_code == 200
    events = client.get(f"/api/schedules/{schedule_id}/events", headers=auth_headers).json()
    assert period_events(events, 1)[0]["lesson_id"] == lesson_ids[1]


def test_manual_rebuild_and_job_status(client, auth_headers):
    course_id, _, _ = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)
    schedule_id = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()["schedule_id"]

    enqueued = client.post(f"/api/schedules/{schedule_id}/rebuild", json={"reason": "manual"}, headers=auth_headers)
    assert enqueued.status_code == 202
    job_id = enqueued.json()["job_id"]

    job = client.get(f"/api/rebuild-jobs/{job_id}", headers=auth_headers)
    assert job.status_code == 200
    assert job.json()["state"] == "Succeeded"
    assert client.get("/api/rebuild-jobs/unknown", headers=auth_headers).json()["state"] == "NotFound"


def test_sequence_state_and_continuation(client, auth_headers, job_queue):
    course_id, topic_id, lesson_ids = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)
    schedule_id = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()["schedule_id"]

    job_queue.paused = True
    new_ids = []
    for title, sort_order in (("L4", 10), ("L5", 11)):
        response = client.post("/api/lessons", json={"title": title, "topic_id": topic_id, "sort_order": sort_order}, headers=auth_headers)
        new_ids.append(response.json()["id"])
    assert client.get(f"/api/schedules/{schedule_id}/rebuild", headers=auth_headers).json()["in_progress"] is True

    state = client.get(f"/api/schedules/{schedule_id}/sequence-state", params={"after_date": "2024-09-04"}, headers=auth_headers)
    assert state.status_code == 200
    body = state.json()
    assert body["course_period_details"][0]["assigned_lessons"] == 3
    point = body["continuation_points"][0]
    assert point["period"] == 1
    assert point["last_assigned_lesson_index"] == 2
    assert point["last_assigned_date"] == "2024-09-04"
    assert point["continuation_date"] == "2024-09-05"
    assert point["remaining_lessons"] == 2
    assert point["course_title"] == "Biology"

    continued = client.post(f"/api/schedules/{schedule_id}/continue", json={"after_date": "2024-09-04"}, headers=auth_headers)
    assert continued.status_code == 200, continued.text
    assert [(event["date"], event["lesson_id"], event["schedule_sort"]) for event in continued.json()] == [
        ("2024-09-05", new_ids[0], 3),
        ("2024-09-06", new_ids[1], 4),
    ]

    events = client.get(f"/api/schedules/{schedule_id}/events", headers=auth_headers).json()
    assert [event["lesson_id"] for event in period_events(events, 1)] == [*lesson_ids, *new_ids]
    assert len(events) == 10


def test_period_regeneration_keeps_history(client, auth_headers):
    course_id, _, lesson_ids = create_course_with_lessons(client, auth_headers, titles=("L1", "L2", "L3", "L4", "L5"))
    configuration = create_configuration(client, auth_headers, course_id)
    schedule_id = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()["schedule_id"]

    regenerated = client.post(
        f"/api/schedules/{schedule_id}/periods/1/regenerate",
        json={"from_date": "2024-09-04"},
        headers=auth_headers,
    )
    assert regenerated.status_code == 200, regenerated.text
    assert [event["date"] for event in regenerated.json()] == ["2024-09-04", "2024-09-05", "2024-09-06"]
    assert [event["schedule_sort"] for event in regenerated.json()] == [2, 3, 4]

    events = client.get(f"/api/schedules/{schedule_id}/events", headers=auth_headers).json()
    assert [event["lesson_id"] for event in period_events(events, 1)] == lesson_ids
    assert len(period_events(events, 2)) == 5

    lunch_period = client.post(f"/api/schedules/{schedule_id}/periods/2/regenerate", json={}, headers=auth_headers)
    assert lunch_period.status_code == 400


def test_other_users_cannot_touch_schedule(client, auth_headers, register_user):
    course_id, _, _ = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)
    schedule_id = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()["schedule_id"]

    intruder = register_user(email="other@example.com", name="Other Teacher")
    assert client.get(f"/api/schedules/{schedule_id}", headers=intruder).status_code == 403
    assert client.post(f"/api/configurations/{configuration['id']}/generate", headers=intruder).status_code == 403
    assert client.get(f"/api/schedules/{schedule_id}/sequence-state", params={"after_date": "2024-09-04"}, headers=intruder).status_code == 403
    assert client.get("/api/schedules/999", headers=intruder).status_code == 404


def test_special_day_changes_roll_back_when_regeneration_is_refused(client, auth_headers):
    course_id, _, _ = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)
    schedule_id = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()["schedule_id"]
    kept = client.post(
        f"/api/schedules/{schedule_id}/special-days",
        json={"date": "2024-09-03", "periods": [1], "event_type": "Testing", "title": "State exam"},
        headers=auth_headers,
    )
    assert kept.status_code == 201
    events_before = client.get(f"/api/schedules/{schedule_id}/events", headers=auth_headers).json()

    # Leave the configuration with no course period so every regeneration is refused.
    updated = client.put(
        f"/api/configurations/{configuration['id']}",
        json={
            "title": "Fall term",
            "periods_per_day": 1,
            "period_assignments": [{"period": 1, "special_period_type": "Lunch"}],
            **WEEK,
        },
        headers=auth_headers,
    )
    assert updated.status_code == 200

    created = client.post(
        f"/api/schedules/{schedule_id}/special-days",
        json={"date": "2024-09-04", "periods": [1], "event_type": "Assembly", "title": "Pep rally"},
        headers=auth_headers,
    )
    assert created.status_code == 400
    assert created.json()["details"]["errors"] == ["No periods assigned to courses"]

    deleted = client.delete(f"/api/schedules/{schedule_id}/special-days/{kept.json()['id']}", headers=auth_headers)
    assert deleted.status_code == 400

    special_days = client.get(f"/api/schedules/{schedule_id}/special-days", headers=auth_headers).json()
    assert [(day["id"], day["title"]) for day in special_days] == [(kept.json()["id"], "State exam")]
    assert client.get(f"/api/schedules/{schedule_id}/events", headers=auth_headers).json() == events_before


def test_synchronous_rewrites_hold_the_schedule_lock(client, auth_headers, job_queue):
    course_id, _, _ = create_course_with_lessons(client, auth_headers)
    configuration = create_configuration(client, auth_headers, course_id)
    schedule_id = client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).json()["schedule_id"]
    key = f"schedule-rebuild-{schedule_id}"
    # The first generation has no schedule to lock yet.
    assert job_queue.locked_keys == []

    assert client.post(f"/api/configurations/{configuration['id']}/generate", headers=auth_headers).status_code == 200
    special = client.post(
        f"/api/schedules/{schedule_id}/special-days",
        json={"date": "2024-09-04", "periods": [1], "event_type": "Assembly", "title": "Pep rally"},
        headers=auth_headers,
    )
    assert special.status_code == 201
    assert client.delete(f"/api/schedules/{schedule_id}/special-days/{special.json()['id']}", headers=auth_headers).status_code == 204
    assert client.post(f"/api/schedules/{schedule_id}/continue", json={"after_date": "2024-09-04"}, headers=auth_headers).status_code == 200
    assert client.post(f"/api/schedules/{schedule_id}/periods/1/regenerate", json={}, headers=auth_headers).status_code == 200
    assert job_queue.locked_keys == [key] * 5
    assert not job_queue.locks[key].locked()


def test_lesson_update_clears_optional_content(client, auth_headers):
    course_id, topic_id, _ = create_course_with_lessons(client, auth_headers)
    created = client.post(
        "/api/lessons",
        json={"title": "Osmosis", "topic_id": topic_id, "objective": "Explain diffusion", "methods": "Lab"},
        headers=auth_headers,
    )
    lesson_id = created.json()["id"]

    cleared = client.put(f"/api/lessons/{lesson_id}", json={"objective": None}, headers=auth_headers)
    assert cleared.status_code == 200
    body = cleared.json()
    assert body["objective"] is None
    assert body["methods"] == "Lab"

    # A null for a required field leaves it as it was.
    kept = client.put(f"/api/lessons/{lesson_id}", json={"title": None, "sort_order": None}, headers=auth_headers)
    assert kept.status_code == 200
    assert kept.json()["title"] == "Osmosis"
    assert kept.json()["methods"] == "Lab"
