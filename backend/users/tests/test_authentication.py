"""
HTTP authentication tests: the bearer header as DRF sees it.
"""
import pytest
from rest_framework.test import APIClient

from users.tokens import issue_access_token, issue_guest_token


@pytest.mark.django_db
class TestBearerActorAuthentication:
    def test_request_without_credentials_is_unauthorized(self, api_client):
        response = api_client.get("/api/orders/")

        assert response.status_code == 401

    def test_invalid_token_is_unauthorized(self):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION="Bearer nonsense")

        response = client.get("/api/orders/")

        assert response.status_code == 401

    def test_malformed_header_is_unauthorized(self, customer_user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_access_token(customer_user)} extra")

        response = client.get("/api/orders/")

        assert response.status_code == 401

    def test_registered_user_can_list_orders(self, customer_client):
        response = customer_client.get("/api/orders/")

        assert response.status_code == 200
        assert response.json() == []

    def test_guest_session_can_list_orders(self):
        token, _ = issue_guest_token(table_id="T2")
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        response = client.get("/api/orders/")

        assert response.status_code == 200

    def test_health_check_needs_no_credentials(self, api_client):
        response = api_client.get("/api/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
