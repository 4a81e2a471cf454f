"""Tests for per-child voice settings."""

import pytest


@pytest.fixture
def child_url(auth_headers, make_child):
    child = make_child(auth_headers)
    return f"/api/voice/settings/{child['id']}"


class TestVoiceSettings:
    def test_defaults_when_nothing_saved(self, client, auth_headers, child_url):
        res = client.get(child_url, headers=auth_headers)
        assert res.status_code == 200
        assert res.json() == {
            "voiceId": "pMsXgVXv3BLzUgSXRplE",
            "stability": 0.5,
            "similarityBoost": 0.75,
            "style": 0.0,
            "speed": 1.0,
            "useSpeakerBoost": True,
        }

    def test_partial_save_fills_defaults_then_keeps_stored_values(self, client, auth_headers, child_url):
        first = client.put(child_url, json={"speed": 0.8}, headers=auth_headers).json()
        assert first["speed"] == 0.8
        assert first["stability"] == 0.5

        second = client.put(child_url, json={"stability": 0.9, "useSpeakerBoost": False},
                            headers=auth_headers).json()
        assert second["speed"] == 0.8
        assert second["stability"] == 0.9
        assert second["useSpeakerBoost"] is False

        assert client.get(child_url, headers=auth_headers).json() == second

    def test_out_of_range_values_are_listed(self, client, auth_headers, child_url):
        res = client.put(child_url, json={"stability": 1.5, "speed": 3, "style": 0.2}, headers=auth_headers)
        assert res.status_code == 400
        body = res.json()
        assert body["error"] == "Invalid voice settings"
        fields = {e["field"]: e["message"] for e in body["validationErrors"]}
        assert fields == {
            "stability": "stability must be between 0 and 1",
            "speed": "speed must be between 0.5 and 2",
        }

        # Nothing was written
        assert client.get(child_url, headers=auth_headers).json()["style"] == 0.0

    def test_foreign_child_is_404(self, client, register, make_child):
        _, alice = register()
        _, bob = register()
        child = make_child(alice)
        url = f"/api/voice/settings/{child['id']}"
        assert client.get(url, headers=bob).status_code == 404
        assert client.put(url, json={"speed": 1.2}, headers=bob).status_code == 404

    def test_requires_auth(self, client, child_url):
        assert client.get(child_url).status_code == 401


class TestValidateRanges:
    def test_bounds_are_inclusive(self):
        from l2r.routes.voice_settings import validate_ranges

        assert validate_ranges({"stability": 0, "similarity_boost": 1, "speed": 0.5}) == []
        assert validate_ranges({"speed": 2.0}) == []

    def test_camel_case_field_names(self):
        from l2r.routes.voice_settings import validate_ranges

        errors = validate_ranges({"similarity_boost": -0.1})
        assert errors == [{"field": "similarityBoost", "message": "similarityBoost must be between 0 and 1"}]
