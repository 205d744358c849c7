import uuid

import pytest
from sqlalchemy import func, select

from coursehub.models.assignment import Assignment
from coursehub.models.course import Course
from coursehub.models.module import CourseModule
from coursehub.models.assignment_submission import AssignmentSubmission
from coursehub.models.video import Video

pytestmark = pytest.mark.anyio


@pytest.fixture
def tutor(make_user):
    return make_user(role="tutor")


@pytest.fixture
async def course_id(client, tutor, auth_header):
    r = await client.post(
        "/api/courses",
        headers=auth_header(tutor),
        json={
            "name": "Data Analysis",
            "description": "Numbers and tables",
            "price": 25,
            "category": "Data",
            "playlist_name": "data_analysis",
        },
    )
    assert r.status_code == 201, r.text
    return r.json()["course"]["id"]


def totals(db, course_id):
    db.expire_all()
    course = db.get(Course, uuid.UUID(course_id))
    return course.total_videos, course.total_duration, course.total_assignments


def count(db, model):
    return db.execute(select(func.count(model.id))).scalar_one()


async def test_modules_get_sequential_order(client, tutor, auth_header, course_id):
    headers = auth_header(tutor)
    orders = []
    for title in ("Setup", "Basics", "Advanced"):
        r = await client.post(f"/api/courses/{course_id}/modules", headers=headers, json={"title": title})
        assert r.status_code == 201
        orders.append(r.json()["module"]["order_index"])

    assert orders == [1, 2, 3]

    r = await client.get(f"/api/courses/{course_id}/modules", headers=headers)
    assert [m["title"] for m in r.json()["modules"]] == ["Setup", "Basics", "Advanced"]


async def test_create_module_with_nested_content_updates_totals(client, db, tutor, auth_header, course_id):
    r = await client.post(
        f"/api/courses/{course_id}/modules",
        headers=auth_header(tutor),
        json={
            "title": "Pandas",
            "videos": [
                {"title": "Series", "url": "https://cdn.example.com/s.mp4", "duration": 100},
                {"title": "Frames", "url": "https://cdn.example.com/f.mp4", "duration": 200},
            ],
            "assignments": [{"title": "Load a CSV", "instructions": "Read the file and print it"}],
        },
    )

    assert r.status_code == 201
    module = r.json()["module"]
    assert [v["order_index"] for v in module["videos"]] == [1, 2]
    assert len(module["assignments"]) == 1
    assert totals(db, course_id) == (2, 300, 1)


async def test_module_title_is_validated(client, tutor, auth_header, course_id):
    r = await client.post(f"/api/courses/{course_id}/modules", headers=auth_header(tutor), json={"title": "ab"})

    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "title"


async def test_update_module(client, tutor, auth_header, course_id):
    headers = auth_header(tutor)
    module_id = (
        await client.post(f"/api/courses/{course_id}/modules", headers=headers, json={"title": "Setup"})
    ).json()["module"]["id"]

    r = await client.put(
        f"/api/courses/{course_id}/modules/{module_id}",
        headers=headers,
        json={"title": "Installation", "description": "Get ready", "order": 4},
    )

    assert r.status_code == 200
    assert r.json()["module"]["title"] == "Installation"
    assert r.json()["module"]["order_index"] == 4


async def test_delete_module_removes_children_and_recomputes(client, db, tutor, make_user, auth_header, course_id):
    headers = auth_header(tutor)
    keep = (
        await client.post(
            f"/api/courses/{course_id}/modules",
            headers=headers,
            json={"title": "Keep", "videos": [{"title": "Stay", "url": "https://cdn.example.com/k.mp4", "duration": 10}]},
        )
    ).json()["module"]
    drop = (
        await client.post(
            f"/api/courses/{course_id}/modules",
            headers=headers,
            json={
                "title": "Drop",
                "videos": [{"title": "Gone", "url": "https://cdn.example.com/g.mp4", "duration": 90}],
                "assignments": [{"title": "Gone too", "instructions": "Nothing to see"}],
            },
        )
    ).json()["module"]

    student = make_user(role="student")
    db.add(AssignmentSubmission(assignment_id=uuid.UUID(drop["assignments"][0]["id"]), student_id=student.id, submission_text="x"))
    db.commit()

    r = await client.delete(f"/api/courses/{course_id}/modules/{drop['id']}", headers=headers)
    assert r.status_code == 200

    assert totals(db, course_id) == (1, 10, 0)
    assert count(db, CourseModule) == 1
    assert count(db, Video) == 1
    assert count(db, Assignment) == 0
    assert count(db, AssignmentSubmission) == 0

    missing = await client.get(f"/api/courses/{course_id}/modules/{drop['id']}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["message"] == "Module not found"
    assert (await client.get(f"/api/courses/{course_id}/modules/{keep['id']}", headers=headers)).status_code == 200


@pytest.fixture
async def module_id(client, tutor, auth_header, course_id):
    r = await client.post(f"/api/courses/{course_id}/modules", headers=auth_header(tutor), json={"title": "Week one"})
    return r.json()["module"]["id"]


def assignments_url(course_id, module_id):
    return f"/api/courses/{course_id}/modules/{module_id}/assignments"


async def test_assignment_lifecycle_keeps_total_in_step(client, db, tutor, auth_header, course_id, module_id):
    headers = auth_header(tutor)
    url = assignments_url(course_id, module_id)

    first = await client.post(
        url,
        headers=headers,
        json={"title": "Warm up", "instructions": "Solve the first three", "due_date": "2026-12-01T10:00:00Z"},
    )
    second = await client.post(url, headers=headers, json={"title": "Project", "instructions": "Build a report", "due_date": ""})
    assert first.status_code == second.status_code == 201
    assert first.json()["assignment"]["due_date"].startswith("2026-12-01T10:00:00")
    assert second.json()["assignment"]["due_date"] is None
    assert second.json()["assignment"]["order_index"] == 2
    assert totals(db, course_id)[2] == 2

    assignment_id = first.json()["assignment"]["id"]
    r = await client.put(
        f"{url}/{assignment_id}",
        headers=headers,
        json={"title": "Warm up v2", "instructions": "Solve the first five", "due_date": None},
    )
    assert r.status_code == 200
    assert r.json()["assignment"]["title"] == "Warm up v2"
    assert r.json()["assignment"]["due_date"] is None

    r = await client.delete(f"{url}/{assignment_id}", headers=headers)
    assert r.status_code == 200
    assert totals(db, course_id)[2] == 1

    listed = await client.get(url, headers=headers)
    assert [a["title"] for a in listed.json()["assignments"]] == ["Project"]


async def test_assignment_rules(client, tutor, auth_header, course_id, module_id):
    r = await client.post(
        assignments_url(course_id, module_id),
        headers=auth_header(tutor),
        json={"title": "", "instructions": "ok fine", "due_date": "someday"},
    )

    assert r.status_code == 400
    errors = {e["field"]: e["message"] for e in r.json()["errors"]}
    assert errors == {"title": "Assignment title is required", "due_date": "Due date must be a valid date"}


async def test_assignment_in_other_module_is_not_found(client, tutor, auth_header, course_id, module_id):
    headers = auth_header(tutor)
    other = (
        await client.post(f"/api/courses/{course_id}/modules", headers=headers, json={"title": "Week two"})
    ).json()["module"]["id"]
    assignment_id = (
        await client.post(
            assignments_url(course_id, module_id), headers=headers, json={"title": "Quiz", "instructions": "Answer all"}
        )
    ).json()["assignment"]["id"]

    r = await client.delete(f"{assignments_url(course_id, other)}/{assignment_id}", headers=headers)

    assert r.status_code == 404
    assert r.json()["message"] == "Assignment not found"
