"""HTTP tests for the /exams endpoints."""


class TestGetPublicExam:
    def test_student_receives_sanitized_exam(self, client, mixed_exam):
        response = client.get("/exams", params={"code": "mix001", "public": "1"})

        assert response.status_code == 200
        data = response.json()
        assert data["code"] == "MIX001"
        assert all("correctAnswer" not in q for q in data["questions"])
        assert data["config"]["autoSaveIntervalSeconds"] == 5

    def test_unknown_code_is_404(self, client):
        response = client.get("/exams", params={"code": "NOPE00", "public": "1"})
        assert response.status_code == 404
        assert response.json() == {"error": "Exam not found"}

    def test_draft_is_403(self, client, draft_exam):
        response = client.get("/exams", params={"code": "DRAFT1", "public": "1"})
        assert response.status_code == 403
        assert "error" in response.json()

    def test_locked_student_is_423(self, client, mc_exam, student):
        # Given a student whose attempt was force-submitted
        client.post(
            "/submit-exam",
            json={
                "examCode": "AB12CD",
                "student": {"fullName": "Alice Tan", "class": "9A", "absentNumber": "7"},
                "answers": {},
                "status": "force_submitted",
            },
        )

        # When they try to fetch the exam again
        response = client.get(
            "/exams", params={"code": "AB12CD", "public": "1", "studentId": student.student_id}
        )

        # Then entry is refused until a teacher unlocks them
        assert response.status_code == 423

    def test_completed_student_is_409(self, client, mc_exam, student):
        client.post(
            "/submit-exam",
            json={
                "examCode": "AB12CD",
                "student": {"fullName": "Alice Tan", "class": "9A", "absentNumber": "7"},
                "answers": {},
            },
        )
        response = client.get(
            "/exams", params={"code": "AB12CD", "public": "1", "studentId": student.student_id}
        )
        assert response.status_code == 409


class TestTeacherExamEndpoints:
    def test_save_and_list(self, client, mc_questions):
        payload = {
            "code": "new123",
            "authorId": "teacher-7",
            "questions": mc_questions,
            "config": {"timeLimitMinutes": 45, "publishState": "draft"},
        }

        response = client.post("/exams", json=payload)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Exam saved successfully"}

        listing = client.get("/exams").json()
        assert len(listing) == 1
        saved = listing[0]
        assert saved["code"] == "NEW123"
        assert saved["authorId"] == "teacher-7"
        assert saved["config"]["timeLimitMinutes"] == 45
        assert saved["questions"][0]["correctAnswer"] == "Alpha"
        assert saved["createdAt"]

    def test_extra_fields_are_preserved(self, client):
        payload = {
            "code": "EXTRA1",
            "questions": [{"id": "q", "questionType": "ESSAY", "rubric": "3 points"}],
            "config": {"theme": "dark"},
        }
        client.post("/exams", json=payload)

        saved = client.get("/exams").json()[0]
        assert saved["authorId"] == "anonymous"
        assert saved["questions"][0]["rubric"] == "3 points"
        assert saved["config"]["theme"] == "dark"

    def test_missing_code_is_400(self, client):
        response = client.post("/exams", json={"questions": []})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request"
        assert "code is required" in body["details"]

    def test_unsupported_method_is_405(self, client):
        response = client.delete("/exams")
        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}
