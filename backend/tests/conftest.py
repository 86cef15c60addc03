"""Shared test fixtures."""
import pytest
from fastapi.testclient import TestClient

from app.core.errors import UpstreamError
from app.services.call_service import CallService
from app.services.call_store import CallRecordStore
from app.services.pending_contacts import PendingContactRegistry


class FakeClock:
    """Manually advanced clock, in epoch seconds."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeUpstream:
    """Stands in for HappyRobotHTTPClient; records calls, serves canned data."""

    configured = True

    def __init__(self, details=None, runs=None, fail=False):
        self.details = details or {}
        self.runs = runs or []
        self.fail = fail
        self.fetched = []

    async def fetch_run(self, run_id, session_id=None):
        self.fetched.append((run_id, session_id))
        if self.fail:
            raise UpstreamError('HappyRobot API unreachable')
        return self.details.get(run_id)

    async def list_runs(self):
        if self.fail:
            raise UpstreamError('HappyRobot API 503: down', status_code=503)
        return list(self.runs)

    async def fetch_details(self, runs):
        return runs


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    s = CallRecordStore()
    yield s
    s.clear()


@pytest.fixture
def pending(clock):
    p = PendingContactRegistry(capacity=20, clock=clock)
    yield p
    p.clear()


@pytest.fixture
def service(store, pending):
    """CallService without an upstream client (payload-only ingestion)."""
    return CallService(store, pending, None, pending_ttl=120)


@pytest.fixture
def make_service(store, pending):
    """Factory fixture: CallService wired to a FakeUpstream."""
    def _make(**upstream_kwargs):
        upstream = FakeUpstream(**upstream_kwargs)
        return CallService(store, pending, upstream, pending_ttl=120), upstream
    return _make


@pytest.fixture
def client(service):
    """FastAPI test client bound to the shared service fixture."""
    from app.main import create_app
    with TestClient(create_app(service)) as c:
        yield c


@pytest.fixture
def envelope():
    """Factory for CloudEvents-style run notifications."""
    def _make(run_id='r1', current='in-progress', updated_at='2026-01-15T10:00:00Z', **data):
        body = {
            'specversion': '1.0',
            'type': 'run.status_changed',
            'data': {
                'run_id': run_id,
                'status': {'current': current, 'updated_at': updated_at},
                **data,
            },
        }
        if run_id is None:
            del body['data']['run_id']
        return body
    return _make


@pytest.fixture
def sessions_run():
    """Detail object in the sessions[].messages shape."""
    return {
        'id': 'r2',
        'status': 'completed',
        'timestamp': '2026-01-15T10:00:00Z',
        'completed_at': '2026-01-15T10:03:05Z',
        'metadata': {'contact_name': 'Antonio Martínez', 'company_name': 'Pinturas Levante SL'},
        'sessions': [{
            'phone_numbers': {'to': '+34669895417'},
            'messages': [
                {'role': 'assistant', 'content': 'Buenos días'},
                {'type': 'tool_call', 'tool_name': 'record_price_expectation',
                 'input_parameters': {'negotiation_result': 'negotiable', 'client_price': '980'}},
                {'type': 'tool_call', 'tool_name': 'escalate_to_commercial', 'input_parameters': {}},
            ],
        }],
    }
