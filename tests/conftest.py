"""Root conftest: shared fixtures for service, repository and router tests."""

import os

import pytest

# Importing app.main builds the app from settings; never talk to a real project
os.environ.setdefault("PUBLIC_SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SECRET_API_KEY", "test-service-role-key")

from app.conversations.service import ConversationService  # noqa: E402

from fakes import InMemoryConversationRepository  # noqa: E402


@pytest.fixture
def repo():
    """In-memory store seeded with four profiles of varying completeness."""
    repo = InMemoryConversationRepository()
    repo.add_profile("alice", "Alice", "Archer", external_identity="auth-alice")
    repo.add_profile("bob", "Bob", None, external_identity="auth-bob")
    repo.add_profile("carol", None, "Cole", external_identity="auth-carol")
    repo.add_profile("dave", None, None, external_identity="auth-dave")
    return repo


@pytest.fixture
def service(repo):
    return ConversationService(repo)


@pytest.fixture
def group(service):
    """A group "Team" owned by alice with bob as a plain member."""
    conversation = service.create_conversation("alice", "group", name="Team").value
    service.add_member("alice", conversation.id, "bob")
    return conversation
