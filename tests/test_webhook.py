import json

import pytest

from stravaimport.activity_id import ActivityId
from stravaimport.errors import MalformedPayload, Misconfigured, ValidationRejected
from stravaimport.webhook import AspectType, ObjectType, parse_event, validate_handshake


class TestValidateHandshake:
    @pytest.mark.parametrize("challenge", ["abc123", "", "with spaces & symbols ü", None])
    def test_echoes_challenge_unchanged(self, challenge):
        assert validate_handshake("subscribe", "tok", challenge, "tok") == {"hub.challenge": challenge}

    @pytest.mark.parametrize(
        "mode,token",
        [
            ("subscribe", "wrong"),
            ("subscribe", None),
            ("subscribe", ""),
            ("unsubscribe", "tok"),
            (None, "tok"),
            ("SUBSCRIBE", "tok"),
        ],
    )
    def test_rejects_mismatch(self, mode, token):
        with pytest.raises(ValidationRejected):
            validate_handshake(mode, token, "abc", "tok")

    def test_non_ascii_token_is_rejected_not_crashing(self):
        with pytest.raises(ValidationRejected):
            validate_handshake("subscribe", "tök", "abc", "tok")

    @pytest.mark.parametrize("expected", [None, ""])
    def test_unconfigured_token(self, expected):
        with pytest.raises(Misconfigured) as exc_info:
            validate_handshake("subscribe", "", "abc", expected)
        assert exc_info.value.status_code == 500

    def test_status_codes(self):
        assert ValidationRejected.status_code == 403
        assert MalformedPayload.status_code == 400


class TestParseEvent:
    def test_parses_activity_create(self):
        body = json.dumps(
            {
                "aspect_type": "create",
                "event_time": 1549560669,
                "object_id": 1360128428,
                "object_type": "activity",
                "owner_id": 134815,
                "subscription_id": 120475,
                "updates": {},
            }
        )

        event = parse_event(body.encode())

        assert event.object_type == ObjectType.ACTIVITY
        assert event.aspect_type == AspectType.CREATE
        assert event.object_id == ActivityId("1360128428")
        assert event.owner_id == 134815
        assert event.event_time == 1549560669
        assert event.is_activity_create

    def test_update_is_not_a_create(self):
        event = parse_event(
            json.dumps(
                {"object_type": "activity", "aspect_type": "update", "object_id": 1, "updates": {"title": "New"}}
            )
        )

        assert event.aspect_type == AspectType.UPDATE
        assert event.updates == {"title": "New"}
        assert not event.is_activity_create

    def test_unknown_types_are_kept_as_strings(self):
        event = parse_event(json.dumps({"object_type": "club", "aspect_type": "archive", "object_id": "77"}))

        assert event.object_type == "club"
        assert event.aspect_type == "archive"
        assert not event.is_activity_create
        assert event.describe() == "club.archive object_id=77 owner_id=None"

    @pytest.mark.parametrize("field", ["object_type", "aspect_type", "object_id"])
    @pytest.mark.parametrize("empty", [None, "", 0, "0", [], {}, False])
    def test_missing_or_empty_required_field(self, field, empty):
        payload = {"object_type": "activity", "aspect_type": "create", "object_id": 123}
        payload[field] = empty

        with pytest.raises(MalformedPayload):
            parse_event(json.dumps(payload))

    @pytest.mark.parametrize("field", ["object_type", "aspect_type", "object_id"])
    def test_absent_required_field(self, field):
        payload = {"object_type": "activity", "aspect_type": "create", "object_id": 123}
        del payload[field]

        with pytest.raises(MalformedPayload, match=field):
            parse_event(json.dumps(payload))

    @pytest.mark.parametrize("body", [b"", b"{not json", b"[]", b"null", b"42", "\"text\"", b"\xff\xfe"])
    def test_undecodable_bodies(self, body):
        with pytest.raises(MalformedPayload):
            parse_event(body)

    @pytest.mark.parametrize("object_id", ["abc", "12x", {"id": 5}, [5], 1.5])
    def test_non_numeric_object_id_is_rejected(self, object_id):
        payload = {"object_type": "activity", "aspect_type": "create", "object_id": object_id}

        with pytest.raises(MalformedPayload, match="object_id"):
            parse_event(json.dumps(payload))
