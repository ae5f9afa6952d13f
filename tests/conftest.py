import pytest

from backend.decoder import EventRoutes, load_event_routes
from live.store import LiveStore
from models.events import InitState


@pytest.fixture
def routes() -> EventRoutes:
    return load_event_routes()


@pytest.fixture
def roster() -> dict:
    """Minimal /application-data payload: two agents, one supervisor, two campaigns."""
    return {
        "users": [
            {"id": "a1", "role": "Agent", "firstName": "Alice", "lastName": "Martin"},
            {"id": "a2", "role": "Agent", "firstName": "Bruno", "lastName": "Petit"},
            {"id": "s1", "role": "Superviseur", "firstName": "Sophie", "lastName": "Durand"},
        ],
        "campaigns": [
            {"id": "c1", "name": "Relance Q3"},
            {"id": "c2", "name": "Prospection"},
        ],
        "savedScripts": [{"id": "sc1", "name": "Accueil"}],
    }


@pytest.fixture
def init_event(roster) -> InitState:
    return InitState.make(roster["users"], roster["campaigns"])


@pytest.fixture
def store() -> LiveStore:
    s = LiveStore()
    yield s
    s.dispose()
