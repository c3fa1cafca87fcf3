# tests/client/conftest.py
import pytest

from remit_chat.client.keys import generate_jwk_pair


@pytest.fixture(scope="session")
def sender_keys():
    return generate_jwk_pair()


@pytest.fixture(scope="session")
def recipient_keys():
    return generate_jwk_pair()


@pytest.fixture(scope="session")
def stranger_keys():
    return generate_jwk_pair()
