"""End-to-end checks of the HTTP surface against the in-memory store."""

from database import STUDY_LOGS, WISHLIST


def _post_log(client, user, subject, minutes, when=None):
    body = {"user_id": user.id, "subject": subject, "duration": minutes}
    if when:
        body["date"] = when
    response = client.post("/api/study-logs", json=body)
    assert response.status_code == 200
    return response.json()


def test_root_and_health(client):
    assert client.get("/").json() == {"message": "Study Tracker API running"}
    health = client.get("/api/health").json()
    assert health["backend"] == "running"


class TestStudyLogs:
    def test_post_returns_game_summary(self, client, student):
        body = _post_log(client, student, "math", 30)
        assert body["status"] == "ok"
        assert body["game"]["total_minutes"] == 30

    def test_stats_by_period(self, client, student):
        _post_log(client, student, "math", 30)
        _post_log(client, student, "english", 20, "2026-10-19T09:00:00")
        _post_log(client, student, "math", 15, "2026-10-02T19:30:00")
        _post_log(client, student, "math", 10, "2026-09-30T19:30:00")

        stats = client.get("/api/study-logs/stats", params={"user_id": student.id}).json()

        assert stats["today_total"] == 30
        assert stats["week_total"] == 50
        assert stats["month_total"] == 65
        assert stats["all_total"] == 75
        assert stats["by_subject"] == {"math": 55, "english": 20}

    def test_list_newest_first_with_limit(self, client, student):
        _post_log(client, student, "math", 15, "2026-10-02T19:30:00")
        _post_log(client, student, "english", 20, "2026-10-19T09:00:00")
        logs = client.get("/api/study-logs", params={"user_id": student.id, "limit": 1}).json()["logs"]
        assert [log["subject"] for log in logs] == ["english"]

    def test_negative_duration_rejected(self, client, student):
        response = client.post("/api/study-logs", json={"user_id": student.id, "subject": "math", "duration": -5})
        assert response.status_code == 400

    def test_unknown_user(self, client):
        response = client.post("/api/study-logs", json={"user_id": "5f9f1b9b9b9b9b9b9b9b9b9b", "subject": "math", "duration": 5})
        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}


class TestExamsAndTargets:
    def _record_sitting(self, client, user):
        return client.post("/api/exams", json={
            "user_id": user.id,
            "exam_type": "mock",
            "exam_name": "October mock",
            "exam_date": "2026-10-10T00:00:00",
            "entries": [
                {"subject": "math", "score": 62},
                {"subject": "english", "score": 90},
            ],
        })

    def test_sitting_creates_one_record_per_subject(self, client, student):
        response = self._record_sitting(client, student)
        assert response.status_code == 200
        assert len(response.json()["ids"]) == 2

        sittings = client.get("/api/exams/sittings", params={"user_id": student.id}).json()["sittings"]
        assert len(sittings) == 1
        assert sittings[0]["key"] == "October mock_2026-10-10"

    def test_empty_sitting_rejected(self, client, student):
        response = client.post("/api/exams", json={"user_id": student.id, "exam_type": "regular", "exam_name": "Midterm"})
        assert response.status_code == 400
        assert response.json() == {"error": "Enter at least one subject"}

    def test_gap_analysis(self, client, student):
        self._record_sitting(client, student)
        client.post("/api/targets", json={
            "user_id": student.id,
            "school_name": "North High",
            "target_scores": {"math": 80, "english": 70},
        })

        body = client.get("/api/analysis/gaps", params={"user_id": student.id}).json()

        assert body["target"]["school_name"] == "North High"
        assert [g["subject"] for g in body["weaknesses"]] == ["math"]
        assert body["weaknesses"][0]["gap"] == 18
        assert [g["subject"] for g in body["strengths"]] == ["english"]
        assert body["strengths"][0]["gap"] == -20

    def test_gap_analysis_without_target(self, client, student):
        response = client.get("/api/analysis/gaps", params={"user_id": student.id})
        assert response.status_code == 404
        assert response.json() == {"error": "No target school registered"}

    def test_targets_sorted_by_priority_and_updated(self, client, student):
        second = client.post("/api/targets", json={"user_id": student.id, "school_name": "South", "priority": 2}).json()["id"]
        client.post("/api/targets", json={"user_id": student.id, "school_name": "North", "priority": 1})

        names = [t["school_name"] for t in client.get("/api/targets", params={"user_id": student.id}).json()["targets"]]
        assert names == ["North", "South"]

        updated = client.put(f"/api/targets/{second}", json={"target_scores": {"math": 90}}).json()["target"]
        assert updated["target_scores"] == {"math": 90}
        assert updated["school_name"] == "South"

        assert client.delete(f"/api/targets/{second}").status_code == 200
        assert client.delete(f"/api/targets/{second}").status_code == 404

    def test_trend(self, client, student):
        self._record_sitting(client, student)
        body = client.get("/api/analysis/trend", params={"user_id": student.id, "subject": "math"}).json()
        assert body["label"] == "Math"
        assert [p["score"] for p in body["points"]] == [62]
        assert body["recorded_subjects"] == ["math", "english"]


class TestTasks:
    def _add(self, client, user, title, level="goal", parent_id=None):
        response = client.post("/api/tasks", json={"user_id": user.id, "title": title, "level": level, "parent_id": parent_id})
        assert response.status_code == 200
        return response.json()["task"]

    def test_completion_flow(self, client, student):
        goal = self._add(client, student, "Graduate")
        large = self._add(client, student, "Math", "large", goal["id"])
        medium = self._add(client, student, "Algebra", "medium", large["id"])
        small = self._add(client, student, "Factoring", "small", medium["id"])
        self._add(client, student, "Equations", "small", medium["id"])

        response = client.post(f"/api/tasks/{small['id']}/completion", json={"completed": True})
        assert response.status_code == 200
        updated = response.json()["updated"]
        assert updated[0] == {"task_id": small["id"], "progress": 100, "status": "completed"}
        assert updated[-1] == {"task_id": goal["id"], "progress": 50, "status": "pending"}

        refused = client.post(f"/api/tasks/{medium['id']}/completion", json={"completed": True})
        assert refused.status_code == 400

        tree = client.get("/api/tasks/tree", params={"user_id": student.id}).json()["goals"]
        assert tree[0]["progress"] == 50
        assert len(tree[0]["children"][0]["children"][0]["children"]) == 2

    def test_edit_and_delete(self, client, student):
        goal = self._add(client, student, "Graduate")
        large = self._add(client, student, "Math", "large", goal["id"])

        edited = client.patch(f"/api/tasks/{large['id']}", json={"memo": "Chapters 1-3", "actual_time": 90}).json()["task"]
        assert edited["memo"] == "Chapters 1-3"
        assert edited["actual_time"] == 90

        deleted = client.delete(f"/api/tasks/{goal['id']}").json()
        assert set(deleted["deleted_ids"]) == {goal["id"], large["id"]}
        assert client.get("/api/tasks", params={"user_id": student.id}).json()["tasks"] == []

    def test_bad_level(self, client, student):
        response = client.post("/api/tasks", json={"user_id": student.id, "title": "x", "level": "epic"})
        assert response.status_code == 400


class TestKids:
    def test_wish_edits_follow_the_owner_gate(self, client, db, student):
        wish_id = str(db[WISHLIST].insert_one({"user_id": student.id, "title": "Old item", "completed": False}).inserted_id)

        patched = client.patch(f"/api/wishlist/{wish_id}", json={"completed": True})
        assert patched.status_code == 403
        assert client.delete(f"/api/wishlist/{wish_id}").status_code == 403
        assert db[WISHLIST].count_documents({"completed": False}) == 1

    def test_wishlist_for_elementary_only(self, client, kid, student):
        refused = client.post("/api/wishlist", json={"user_id": student.id, "title": "New bike"})
        assert refused.status_code == 403

        item = client.post("/api/wishlist", json={"user_id": kid.id, "title": "New bike"}).json()["item"]
        assert item["completed"] is False

        toggled = client.patch(f"/api/wishlist/{item['id']}", json={"completed": True}).json()["item"]
        assert toggled["completed"] is True

        items = client.get("/api/wishlist", params={"user_id": kid.id}).json()["items"]
        assert [i["title"] for i in items] == ["New bike"]

        assert client.delete(f"/api/wishlist/{item['id']}").status_code == 200
        assert client.get("/api/wishlist", params={"user_id": kid.id}).json()["items"] == []

    def test_subjects_by_grade(self, client):
        body = client.get("/api/subjects", params={"grade": 3}).json()
        assert body["level"] == "elementary"
        assert "sansu" in [s["key"] for s in body["subjects"]]
        assert "math" not in [s["key"] for s in body["subjects"]]


class TestPreferences:
    def test_defaults_then_save(self, client, student):
        assert client.get(f"/api/preferences/{student.id}").json() == {
            "expanded_ids": [],
            "collapsed_memo_ids": [],
            "user_id": student.id,
        }
        saved = client.put(f"/api/preferences/{student.id}", json={"expanded_ids": ["a", "b", "a"]}).json()
        assert saved["expanded_ids"] == ["a", "b"]
        assert saved["collapsed_memo_ids"] == []


class TestTeacherOverview:
    def test_undated_log_leaves_last_study_date_empty(self, client, db, student):
        db[STUDY_LOGS].insert_one({"user_id": student.id, "subject": "math", "duration": 25})
        rows = client.get("/api/teacher/students").json()["students"]
        assert rows[0]["last_study_date"] is None
        assert rows[0]["weekly_study_time"] == 0

    def test_students_sorted_by_grade(self, client, student, other_student, kid, teacher):
        _post_log(client, student, "math", 30)
        _post_log(client, student, "math", 45, "2026-10-10T09:00:00")
        client.post("/api/student-messages", json={"student_id": student.id, "mood": 5, "message": "Feeling good"})

        rows = client.get("/api/teacher/students").json()["students"]

        assert [r["name"] for r in rows] == ["Sora", "Ren", "Hana"]
        hana = rows[-1]
        assert hana["weekly_study_time"] == 30
        assert hana["last_study_date"] == "2026-10-21"
        assert hana["latest_message"]["message"] == "Feeling good"
        assert rows[0]["latest_message"] is None
