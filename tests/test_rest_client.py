import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import requests

from connector.rest_client import (
    RepositoryAPIError,
    RepositoryAuthError,
    RestAppointmentRepository,
)
from scheduling import Appointment, AppointmentStatus

START = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def make_appointment(appointment_id: str = "a1", start: datetime = START) -> Appointment:
    return Appointment(
        id=appointment_id,
        patient_id="patient-1",
        client_id="client-1",
        resource_ids=frozenset({"1"}),
        type_id="1",
        start_time=start,
        end_time=start + timedelta(minutes=30),
    )


def make_response(status_code: int = 200, payload=None, content: bytes = b"{}") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.content = content
    response.text = "error"
    response.headers = {"Content-Type": "application/json"}
    return response


class RestAppointmentRepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session = MagicMock()
        token_response = MagicMock()
        token_response.json.return_value = {"access_token": "token-123", "expires_in": 3600}
        self.session.post.return_value = token_response

        self.repository = RestAppointmentRepository(
            base_url="https://records.example.test/api/",
            token_url="https://records.example.test/oauth/token",
            client_id="client",
            client_secret="secret",
            session=self.session,
        )

    def test_find_by_resource_and_range_parses_and_sorts(self) -> None:
        later = make_appointment("b", START + timedelta(hours=1)).to_dict()
        earlier = make_appointment("a", START).to_dict()
        self.session.request.return_value = make_response(payload={"appointments": [later, earlier]})

        appointments = self.repository.find_by_resource_and_range("1", START, START + timedelta(hours=2))

        self.assertEqual([appointment.id for appointment in appointments], ["a", "b"])
        kwargs = self.session.request.call_args.kwargs
        self.assertEqual(kwargs["method"], "GET")
        self.assertEqual(kwargs["url"], "https://records.example.test/api/resources/1/appointments")
        self.assertEqual(kwargs["params"]["start"], START.isoformat())
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer token-123")

    def test_token_is_cached_between_requests(self) -> None:
        self.session.request.return_value = make_response(payload=[])

        self.repository.list_by_status(AppointmentStatus.SCHEDULED)
        self.repository.list_by_status(AppointmentStatus.CHECKED_IN)

        self.session.post.assert_called_once()
        self.assertEqual(self.session.request.call_args.kwargs["params"], {"status": "checked_in"})

    def test_insert_falls_back_to_local_record_on_empty_body(self) -> None:
        appointment = make_appointment()
        self.session.request.return_value = make_response(status_code=201, content=b"")

        stored = self.repository.insert(appointment)

        self.assertIs(stored, appointment)
        kwargs = self.session.request.call_args.kwargs
        self.assertEqual(kwargs["method"], "POST")
        self.assertEqual(kwargs["json"]["id"], "a1")

    def test_update_returns_server_copy(self) -> None:
        appointment = make_appointment()
        server_copy = dict(appointment.to_dict(), status="checked_in")
        self.session.request.return_value = make_response(payload=server_copy)

        stored = self.repository.update(appointment)

        self.assertIs(stored.status, AppointmentStatus.CHECKED_IN)
        self.assertEqual(self.session.request.call_args.kwargs["method"], "PUT")

    def test_get_returns_none_for_missing_appointment(self) -> None:
        self.session.request.return_value = make_response(status_code=404)

        self.assertIsNone(self.repository.get("missing"))

    def test_unexpected_status_raises_api_error(self) -> None:
        self.session.request.return_value = make_response(status_code=500, payload={"error": "boom"})

        with self.assertRaises(RepositoryAPIError):
            self.repository.list_by_status(AppointmentStatus.SCHEDULED)

    def test_transport_failure_raises_api_error(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("unreachable")

        with self.assertRaises(RepositoryAPIError):
            self.repository.get("a1")

    def test_token_failure_raises_auth_error(self) -> None:
        self.session.post.return_value.raise_for_status.side_effect = requests.HTTPError("401")

        with self.assertRaises(RepositoryAuthError):
            self.repository.get("a1")
        self.session.request.assert_not_called()

    def test_token_without_access_token_raises_auth_error(self) -> None:
        self.session.post.return_value.json.return_value = {"expires_in": 3600}

        with self.assertRaises(RepositoryAuthError):
            self.repository.get("a1")

    def test_constructor_requires_credentials(self) -> None:
        with self.assertRaises(ValueError):
            RestAppointmentRepository(
                base_url="https://records.example.test",
                token_url="https://records.example.test/token",
                client_id=None,
                client_secret=None,
                session=self.session,
            )

    def test_is_configured_reads_environment_defaults(self) -> None:
        with patch("connector.rest_client.DEFAULT_BASE_URL", ""):
            self.assertFalse(RestAppointmentRepository.is_configured())
        with patch.multiple(
            "connector.rest_client",
            DEFAULT_BASE_URL="https://records.example.test",
            DEFAULT_TOKEN_URL="https://records.example.test/token",
            DEFAULT_CLIENT_ID="client",
            DEFAULT_CLIENT_SECRET="secret",
        ):
            self.assertTrue(RestAppointmentRepository.is_configured())


if __name__ == "__main__":
    unittest.main()
