import pytest
from fastapi.testclient import TestClient

from khata.api.limiter import limiter
from khata.main import app
from khata.models.schemas import MarkTarget, RosterStudent
from khata.repositories.memory import InMemoryMarkRepository, InMemoryRosterRepository
from khata.repositories.providers import get_mark_repository, get_roster_repository
from khata.services.circuit_breaker import gemini_circuit_breaker, openai_circuit_breaker
from khata.services.extraction import BaseLLMExtractor, KhataExtractionService
from khata.services.session import ReviewSessionStore, get_session_store


CLASS_ID = "class-5"


class FakeExtractor(BaseLLMExtractor):
    """Replays canned replies; an Exception in the list is raised instead."""

    provider = "fake"

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = 0

    async def generate(self, prompt, image):
        self.calls += 1
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def health_check(self):
        return True


def make_service(replies) -> KhataExtractionService:
    service = KhataExtractionService()
    service.provider = "gemini"
    service.extractor = FakeExtractor(replies)
    service._initialized = True
    return service


def make_images(count):
    return [(b"fake-image-%d" % i, "image/png") for i in range(count)]


@pytest.fixture
def target():
    return MarkTarget(class_id=CLASS_ID, subject_id="math", term=1, year=2024)


@pytest.fixture
def roster():
    return [
        RosterStudent(id="s1", name="করিম", roll_number="01", class_id=CLASS_ID),
        RosterStudent(id="s2", name="রহিম", roll_number="02", class_id=CLASS_ID),
    ]


@pytest.fixture
def roster_repo(roster):
    return InMemoryRosterRepository(roster)


@pytest.fixture
def mark_repo():
    return InMemoryMarkRepository()


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    yield
    gemini_circuit_breaker.reset()
    openai_circuit_breaker.reset()


@pytest.fixture
def client(roster_repo, mark_repo):
    store = ReviewSessionStore()
    app.dependency_overrides[get_roster_repository] = lambda: roster_repo
    app.dependency_overrides[get_mark_repository] = lambda: mark_repo
    app.dependency_overrides[get_session_store] = lambda: store
    limiter.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()
    limiter.reset()
