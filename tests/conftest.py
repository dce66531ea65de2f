"""
Fixtures pytest partagées.

- db: base MongoDB en mémoire (mongomock-motor), neuve pour chaque test
- client: TestClient sur l'application construite avec cette base
"""

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from pharmia.server import create_app


@pytest.fixture
def db():
    return AsyncMongoMockClient()["pharmia_test"]


@pytest.fixture
def client(db):
    return TestClient(create_app(db=db))


@pytest.fixture(autouse=True)
def no_emails(monkeypatch):
    """Aucun appel SendGrid pendant les tests"""
    from pharmia.email_service import email_service
    sent = []

    def _fake_send(to_email, subject, html_content):
        sent.append({"to": to_email, "subject": subject})
        return True

    monkeypatch.setattr(email_service, "_send_email", _fake_send)
    return sent
