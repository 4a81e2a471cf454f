"""Tests for the per-user onboarding wizard state."""


class TestOnboarding:
    def test_defaults_before_anything_is_saved(self, client, auth_headers):
        res = client.get("/api/onboarding", headers=auth_headers)
        assert res.status_code == 200
        assert res.json() == {"onboarding": {"completed": False, "step": 0, "data": {}}}

    def test_data_is_merged_across_saves(self, client, auth_headers):
        client.put("/api/onboarding", json={"step": 1, "data": {"childName": "Mia"}}, headers=auth_headers)
        res = client.put("/api/onboarding", json={"step": 2, "data": {"interests": ["animals"]}},
                         headers=auth_headers)
        state = res.json()["onboarding"]
        assert state["step"] == 2
        assert state["data"] == {"childName": "Mia", "interests": ["animals"]}
        assert state["completed"] is False

    def test_omitted_fields_are_left_alone(self, client, auth_headers):
        client.put("/api/onboarding", json={"step": 3, "data": {"a": 1}}, headers=auth_headers)
        state = client.put("/api/onboarding", json={"completed": True}, headers=auth_headers).json()["onboarding"]
        assert state["step"] == 3
        assert state["data"] == {"a": 1}
        assert state["completed"] is True

    def test_complete(self, client, auth_headers):
        res = client.post("/api/onboarding/complete", headers=auth_headers)
        assert res.status_code == 200
        assert res.json() == {"completed": True}
        assert client.get("/api/onboarding", headers=auth_headers).json()["onboarding"]["completed"] is True

    def test_complete_keeps_saved_step(self, client, auth_headers):
        client.put("/api/onboarding", json={"step": 4}, headers=auth_headers)
        client.post("/api/onboarding/complete", headers=auth_headers)
        state = client.get("/api/onboarding", headers=auth_headers).json()["onboarding"]
        assert state["step"] == 4
        assert state["completed"] is True

    def test_state_is_per_user(self, client, register):
        _, alice = register()
        _, bob = register()
        client.put("/api/onboarding", json={"step": 5}, headers=alice)
        assert client.get("/api/onboarding", headers=bob).json()["onboarding"]["step"] == 0

    def test_requires_auth(self, client):
        assert client.get("/api/onboarding").status_code == 401
