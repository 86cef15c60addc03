from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

import structlog

from app.core.config import Settings
from app.core.errors import UpstreamError
from app.domain.entities.call_record import CallRecord, PendingContact, TERMINAL_STATUSES
from app.infrastructure.external.happyrobot_http import HappyRobotHTTPClient
from app.services.call_store import CallRecordStore
from app.services.classification import classify
from app.services.extraction import Envelope, PayloadShape, extract, unwrap
from app.services.metrics_service import DashboardStats, compute_stats
from app.services.normalizer import normalize, utcnow_iso
from app.services.pending_contacts import DEFAULT_TTL_SECS, PendingContactRegistry
from app.services.result_reports import apply_result_report

logger = structlog.get_logger("call-service")


@dataclass
class IngestResult:
    record: Optional[CallRecord]
    shape: PayloadShape
    keys: List[str] = field(default_factory=list)

    @property
    def missing_correlation_id(self) -> bool:
        return self.record is None


class CallService:
    """Entry point for every channel that feeds or reads call records."""

    def __init__(self, store: CallRecordStore, pending: PendingContactRegistry,
                 client: HappyRobotHTTPClient | None = None, *, pending_ttl: float = DEFAULT_TTL_SECS):
        self.store = store
        self.pending = pending
        self.client = client
        self.pending_ttl = pending_ttl

    # push: webhook

    async def ingest_webhook_payload(self, raw: Any) -> IngestResult:
        env = unwrap(raw)
        if not env.has_correlation_id:
            logger.warning("webhook.no_correlation_id", shape=env.shape.value, keys=env.keys)
            return IngestResult(record=None, shape=env.shape, keys=env.keys)

        record = self._build(env.run, env)
        if env.shape is PayloadShape.ENVELOPED_EVENT and self._wants_detail(record):
            detail = await self._fetch_detail(env.run_id, env.session_id)
            if detail:
                record = self._overlay(record, self._build(detail, env))

        record = self._correlate_pending(record)
        stored = self.store.upsert(record)
        logger.info("webhook.ingested", run_id=stored.id, shape=env.shape.value, status=stored.status,
                    outcome=stored.outcome, tools=stored.tools_called)
        return IngestResult(record=stored, shape=env.shape, keys=env.keys)

    # push: result reports and pre-registration

    def ingest_result_report(self, phone: str | None, fields: Mapping[str, Any]) -> bool:
        matched = apply_result_report(self.store, phone, fields)
        logger.info("call_result.applied", phone=phone, outcome=fields.get("outcome"), matched=matched)
        return matched

    def register_pending_contact(self, contact: PendingContact | Mapping[str, Any]) -> PendingContact:
        if not isinstance(contact, PendingContact):
            contact = PendingContact.model_validate(dict(contact))
        return self.pending.register(contact)

    # read / pull

    def list_records(self) -> List[CallRecord]:
        return self.store.get_all()

    def stats(self, records: Sequence[CallRecord] | None = None) -> DashboardStats:
        return compute_stats(self.list_records() if records is None else records)

    async def fetch_and_reconcile_from_upstream(self) -> List[CallRecord]:
        """Pull recent runs from the platform and merge them into the store.

        Raises UpstreamError when no client is configured or the listing fails.
        """
        if self.client is None:
            raise UpstreamError("HappyRobot client not configured")
        runs = await self.client.list_runs()
        runs = await self.client.fetch_details(runs)

        reconciled = 0
        for run in runs:
            env = unwrap(run)
            if not env.has_correlation_id:
                continue
            self.store.upsert(self._build(env.run, env))
            reconciled += 1
        logger.info("upstream.reconciled", listed=len(runs), reconciled=reconciled)
        return self.list_records()

    # helpers

    def _build(self, run: Mapping[str, Any], env: Envelope) -> CallRecord:
        extracted = extract(run)
        status = env.status if env.shape is PayloadShape.ENVELOPED_EVENT else None
        extracted.status = status or extracted.status or env.status or "running"

        existing = self.store.get(env.run_id) if env.run_id else None
        extracted.timestamp = (extracted.timestamp or (existing.timestamp if existing else None)
                               or env.updated_at or utcnow_iso())
        if extracted.status in TERMINAL_STATUSES and not extracted.completed_at:
            extracted.completed_at = env.updated_at

        classified = classify(extracted.tool_names, status=extracted.status)
        return normalize(dict(run), extracted, classified, run_id=env.run_id, session_id=env.session_id)

    def _wants_detail(self, record: CallRecord) -> bool:
        if self.client is None or not self.client.configured:
            return False
        return record.status in TERMINAL_STATUSES or not record.phone

    async def _fetch_detail(self, run_id: str | None, session_id: str | None) -> Optional[Mapping[str, Any]]:
        try:
            detail = await self.client.fetch_run(run_id, session_id)
        except UpstreamError as e:
            logger.warning("upstream.fetch_failed", run_id=run_id, session_id=session_id, error=str(e))
            return None
        if detail is None:
            logger.info("upstream.detail_missing", run_id=run_id, session_id=session_id)
        return detail

    @staticmethod
    def _overlay(base: CallRecord, detail: CallRecord) -> CallRecord:
        """Detail data fills in the event record; the event keeps its status."""
        patch = {k: v for k, v in detail.model_dump().items() if v not in (None, "", [])}
        patch["status"] = base.status
        return CallRecord.model_validate({**base.model_dump(), **patch})

    def _correlate_pending(self, record: CallRecord) -> CallRecord:
        if record.status != "running" or self.store.was_correlated(record.id):
            return record
        existing = self.store.get(record.id)
        phone = record.phone or (existing.phone if existing else "")
        contact_name = record.contact_name or (existing.contact_name if existing else None)
        if phone and contact_name:
            return record

        pending = self.pending.claim_recent(self.pending_ttl)
        if pending is None:
            return record
        self.store.mark_correlated(record.id)
        company_name = record.company_name or (existing.company_name if existing else None)
        logger.info("pending_contact.applied", run_id=record.id, phone=pending.phone)
        return record.model_copy(update={
            "phone": phone or pending.phone,
            "contact_name": contact_name or pending.contact_name,
            "company_name": company_name or pending.company_name,
        })


def build_call_service(cfg: Settings) -> CallService:
    """Construct the process-wide stores and the service around them."""
    client = HappyRobotHTTPClient(
        api_key=cfg.happyrobot_api_key,
        base_url=cfg.happyrobot_api_root,
        org_id=cfg.happyrobot_org_id,
        use_case_id=cfg.happyrobot_use_case_id,
        timeout=cfg.happyrobot_timeout_secs,
        page_size=cfg.happyrobot_page_size,
        detail_fetch_limit=cfg.happyrobot_detail_fetch_limit,
    )
    return CallService(
        CallRecordStore(max_records=cfg.call_store_max_records),
        PendingContactRegistry(capacity=cfg.pending_contact_capacity),
        client if client.configured else None,
        pending_ttl=cfg.pending_contact_ttl_secs,
    )
