"""Tests for app.services.call_service: ingestion paths end to end."""
import asyncio

import httpx
import pytest

from app.core.errors import UpstreamError
from app.domain.entities.call_record import PendingContact
from app.infrastructure.external.happyrobot_http import HappyRobotHTTPClient
from app.services.call_service import CallService


def _ingest(svc, payload):
    return asyncio.run(svc.ingest_webhook_payload(payload))


class TestIngestEnvelope:
    """CloudEvents notifications, payload-only (no upstream client)."""

    def test_running_event_creates_in_progress_record(self, service, envelope):
        result = _ingest(service, envelope())
        rec = result.record
        assert rec.id == 'r1'
        assert rec.status == 'running'
        assert rec.outcome == 'in_progress'
        assert rec.timestamp == '2026-01-15T10:00:00Z'

    def test_missing_run_id_is_reported_not_raised(self, service, envelope, store):
        result = _ingest(service, envelope(run_id=None))
        assert result.missing_correlation_id
        assert result.record is None
        assert len(store) == 0

    def test_pending_contact_claimed_once(self, service, envelope, store, pending, clock):
        _ingest(service, envelope())
        assert store.get('r1').phone == ''

        service.register_pending_contact({'phone': '+34600000000', 'contact_name': 'Ana'})
        clock.advance(5)
        rec = _ingest(service, envelope()).record
        assert rec.phone == '+34600000000'
        assert rec.contact_name == 'Ana'
        assert len(pending) == 0

        service.register_pending_contact(PendingContact(phone='+34699999999', contact_name='Otro'))
        rec = _ingest(service, envelope()).record
        assert (rec.phone, rec.contact_name) == ('+34600000000', 'Ana')
        assert len(pending) == 1

    def test_stale_pending_contact_ignored(self, service, envelope, pending, clock):
        service.register_pending_contact({'phone': '+34600000000', 'contact_name': 'Ana'})
        clock.advance(121)
        rec = _ingest(service, envelope()).record
        assert rec.phone == ''
        assert len(pending) == 1

    def test_completed_event_does_not_claim(self, service, envelope, pending):
        service.register_pending_contact({'phone': '+34600000000', 'contact_name': 'Ana'})
        rec = _ingest(service, envelope(current='completed')).record
        assert rec.status == 'completed'
        assert rec.phone == ''
        assert len(pending) == 1

    def test_completion_never_reverts_to_running(self, service, envelope):
        _ingest(service, envelope(current='completed', updated_at='2026-01-15T10:05:00Z'))
        rec = _ingest(service, envelope(current='in-progress')).record
        assert rec.status == 'completed'
        assert rec.completed_at == '2026-01-15T10:05:00Z'
        assert rec.outcome == 'unknown'

    def test_idempotent(self, service, envelope):
        first = _ingest(service, envelope()).record
        second = _ingest(service, envelope()).record
        assert first == second


class TestIngestWithUpstream:
    """Enveloped events enriched from the platform's run detail."""

    def test_terminal_event_fetches_detail(self, make_service, envelope, sessions_run):
        detail = {**sessions_run, 'id': 'r1'}
        svc, upstream = make_service(details={'r1': detail})
        rec = _ingest(svc, envelope(current='completed', session_id='s1')).record
        assert upstream.fetched == [('r1', 's1')]
        assert rec.outcome == 'escalated'
        assert rec.phase_reached == 6
        assert rec.phone == '+34669895417'
        assert rec.contact_name == 'Antonio Martínez'
        assert rec.session_id == 's1'
        assert rec.status == 'completed'

    def test_fetch_failure_degrades_to_payload_only(self, make_service, envelope):
        svc, upstream = make_service(fail=True)
        result = _ingest(svc, envelope(current='completed'))
        assert upstream.fetched == [('r1', None)]
        assert result.record.status == 'completed'
        assert result.record.outcome == 'unknown'

    def test_missing_detail_keeps_event_data(self, make_service, envelope):
        svc, _ = make_service(details={})
        rec = _ingest(svc, envelope(current='failed')).record
        assert rec.status == 'failed'

    def test_running_event_with_phone_skips_fetch(self, make_service, envelope):
        svc, upstream = make_service()
        _ingest(svc, envelope(metadata={'phone_number': '+34600000002'}))
        assert upstream.fetched == []


class TestIngestLegacy:
    def test_legacy_object_with_sessions(self, service):
        payload = {'id': 'r2', 'status': 'completed', 'sessions': [{'messages': [
            {'type': 'tool_call', 'tool_name': 'record_qualified_lead', 'input_parameters': {}}]}]}
        rec = _ingest(service, payload).record
        assert rec.outcome == 'qualified'
        assert rec.phase_reached == 4
        assert rec.tools_called == ['record_qualified_lead']

    def test_wrapped_under_run(self, service):
        rec = _ingest(service, {'run': {'id': 'r3', 'status': 'running'}}).record
        assert rec.id == 'r3'
        assert rec.outcome == 'in_progress'

    def test_unknown_shape(self, service):
        result = _ingest(service, {'hello': 'world'})
        assert result.missing_correlation_id
        assert result.keys == ['hello']


class TestResultReports:
    def test_updates_existing_record(self, service, store):
        _ingest(service, {'id': 'r9', 'status': 'running', 'metadata': {'phone_number': '+34600000001'}})
        assert service.ingest_result_report('+34600000001', {'outcome': 'escalated'}) is True
        rec = store.get('r9')
        assert (rec.outcome, rec.status) == ('escalated', 'completed')

    def test_later_webhook_does_not_undo_report(self, service, store):
        _ingest(service, {'id': 'r9', 'status': 'running', 'metadata': {'phone_number': '+34600000001'}})
        service.ingest_result_report('+34600000001', {'outcome': 'escalated'})
        _ingest(service, {'id': 'r9', 'status': 'completed'})
        assert store.get('r9').outcome == 'escalated'

    def test_unmatched(self, service):
        assert service.ingest_result_report('+34600000000', {'outcome': 'qualified'}) is False


class TestPull:
    def test_reconciles_listing(self, make_service, sessions_run, store):
        svc, _ = make_service(runs=[sessions_run, {'status': 'completed'}])
        records = asyncio.run(svc.fetch_and_reconcile_from_upstream())
        assert [r.id for r in records] == ['r2']
        assert store.get('r2').outcome == 'escalated'

    def test_merges_with_pushed_data(self, make_service, sessions_run, store):
        svc, _ = make_service(runs=[{**sessions_run, 'metadata': {}}])
        _ingest(svc, {'id': 'r2', 'status': 'running', 'metadata': {'contact_name': 'Ana'}})
        asyncio.run(svc.fetch_and_reconcile_from_upstream())
        assert store.get('r2').contact_name == 'Ana'

    def test_listing_failure_raises_upstream_error(self, make_service):
        svc, _ = make_service(fail=True)
        with pytest.raises(UpstreamError):
            asyncio.run(svc.fetch_and_reconcile_from_upstream())

    def test_without_client(self, service):
        with pytest.raises(UpstreamError):
            asyncio.run(service.fetch_and_reconcile_from_upstream())


class TestStats:
    def test_stats_over_store(self, service):
        _ingest(service, {'id': 'a', 'status': 'running'})
        _ingest(service, {'id': 'b', 'status': 'completed', 'events': [
            {'type': 'tool_call', 'tool_name': 'escalate_to_commercial'}]})
        stats = service.stats()
        assert stats.total == 2
        assert stats.escalated == 1
        assert stats.in_progress == 1
        assert stats.conversion_rate == 50.0


class TestMalformedUpstreamBodies:
    """A real client over a transport that answers 200 with HTML."""

    @staticmethod
    def _service(store, pending, handler):
        client = HappyRobotHTTPClient(api_key='k', base_url='https://hr.test', use_case_id='uc',
                                      org_id='', transport=httpx.MockTransport(handler))
        return CallService(store, pending, client, pending_ttl=120)

    def test_webhook_degrades_to_payload_only(self, store, pending, envelope):
        svc = self._service(store, pending, lambda req: httpx.Response(200, text='<html>gateway</html>'))
        rec = _ingest(svc, envelope(current='completed')).record
        assert rec.id == 'r1'
        assert rec.status == 'completed'
        assert store.get('r1') == rec

    def test_pull_keeps_entry_when_detail_is_not_json(self, store, pending):
        def handler(request):
            if request.url.path == '/runs/':
                return httpx.Response(200, json=[{'id': 'a', 'status': 'completed'}])
            return httpx.Response(200, text='<html>oops</html>')
        svc = self._service(store, pending, handler)
        records = asyncio.run(svc.fetch_and_reconcile_from_upstream())
        assert [r.id for r in records] == ['a']

    def test_pull_with_non_json_listing_raises_upstream_error(self, store, pending):
        svc = self._service(store, pending, lambda req: httpx.Response(200, text=''))
        with pytest.raises(UpstreamError):
            asyncio.run(svc.fetch_and_reconcile_from_upstream())


def test_malformed_tool_arguments_still_classify(service):
    payload = {'id': 'r5', 'status': 'completed', 'sessions': [{'messages': [
        {'type': 'tool_call', 'tool_name': 'escalate_to_commercial', 'arguments': 'not json'}]}]}
    assert _ingest(service, payload).record.outcome == 'escalated'
