"""
Extraction trigger + ingestion tests (services/extraction_service.py).

Coverage:
  1. Group classification: success / warning / error precedence
  2. Ingestion writes result + status together, re-extraction overwrites
  3. Per-image advisory classification hints
  4. Session-wide extraction advances the session to review_demand
  5. Station classification: valid only with complete data
"""

import pytest

from fieldcapture.core.exceptions import ConflictError
from fieldcapture.integrations.extraction_gateway import ExtractionOutcome
from fieldcapture.models import db
from fieldcapture.models.capture import CaptureGroup, CaptureImage, ExtractionResult
from fieldcapture.models.session import CaptureSession
from fieldcapture.models.station import StationCapture
from fieldcapture.services import capture_pipeline as cp
from fieldcapture.services import extraction_service as es


# ── Helpers ─────────────────────────────────────────────────────────────────


def _session(status="capturing_loading_lists") -> CaptureSession:
    s = CaptureSession(status=status)
    db.session.add(s)
    db.session.commit()
    return s


def _ready_group(n=2, session=None) -> str:
    session = session or _session()
    gid = cp.create_pending_group(session.id, n).id
    for i in range(n):
        cp.record_group_upload_completion(gid, i, f"memory://blobs/{gid}/{i}.jpg")
    return gid


def _ready_station(session=None) -> str:
    session = session or _session("capturing_inventory")
    stid = cp.create_pending_station(session.id).id
    cp.record_station_upload_completion(stid, "sign", "memory://blobs/sign.jpg")
    cp.record_station_upload_completion(stid, "stock", "memory://blobs/stock.jpg")
    return stid


def _ok(**data) -> ExtractionOutcome:
    return ExtractionOutcome(ok=True, data=data)


def _item(code="P1", qty=3, activity="A1"):
    return {"primaryCode": code, "quantity": qty, "activityCode": activity}


# ═════════════════════════════════════════════════════════════════════════════
# Group classification
# ═════════════════════════════════════════════════════════════════════════════


class TestClassifyGroupExtraction:
    def test_success(self):
        assert es.classify_group_extraction(_ok(lineItems=[_item()]), 1) == ("success", None)

    def test_warnings_make_warning(self):
        outcome = _ok(lineItems=[_item()], warnings=["blurry corner"])
        assert es.classify_group_extraction(outcome, 1) == ("warning", None)

    def test_ignored_images_make_warning(self):
        outcome = _ok(lineItems=[_item()], ignoredImages=[{"imageIndex": 1}])
        assert es.classify_group_extraction(outcome, 2) == ("warning", None)

    def test_call_failure(self):
        status, message = es.classify_group_extraction(ExtractionOutcome.failure("HTTP 502"), 1)
        assert (status, message) == ("error", "HTTP 502")

    def test_extractor_error_status_wins(self):
        outcome = _ok(status="error", message="model overloaded", lineItems=[_item()])
        assert es.classify_group_extraction(outcome, 1) == ("error", "model overloaded")

    def test_no_usable_items_is_error(self):
        outcome = _ok(lineItems=[_item(qty=0), _item(code="  ")])
        assert es.classify_group_extraction(outcome, 1) == ("error", "No line items could be extracted")

    def test_no_items_when_every_image_rejected(self):
        outcome = _ok(
            lineItems=[],
            imageChecks=[{"imageIndex": 0, "isLoadingList": False}],
            ignoredImages=[{"imageIndex": 1}],
        )
        assert es.classify_group_extraction(outcome, 2) == ("success", None)

    def test_no_items_with_one_image_accepted(self):
        outcome = _ok(lineItems=[], imageChecks=[{"imageIndex": 0, "isLoadingList": False}])
        assert es.classify_group_extraction(outcome, 2)[0] == "error"


# ═════════════════════════════════════════════════════════════════════════════
# Group ingestion
# ═════════════════════════════════════════════════════════════════════════════


class TestGroupIngestion:
    def test_trigger_sends_ordered_urls(self, fake_extractor):
        gid = _ready_group(3)
        fake_extractor.queue(_ok(lineItems=[_item()]))

        summary = es.trigger_group_extraction(gid)

        _kind, urls, model = fake_extractor.calls[0]
        assert urls == [f"memory://blobs/{gid}/{i}.jpg" for i in range(3)]
        assert model == "test-model"
        assert summary["status"] == "success"
        assert summary["line_item_count"] == 1
        assert summary["employee_label"] == "Employee 1"

    def test_result_and_status_written_together(self, fake_extractor):
        gid = _ready_group(1)
        fake_extractor.queue(_ok(
            lineItems=[_item(), _item("P2", 1)],
            activities=[{"activityCode": "A1"}],
            summary={"totalActivities": 1},
            totalCost=0.12,
        ))
        es.trigger_group_extraction(gid, model_id="m-2")

        group = db.session.get(CaptureGroup, gid)
        assert group.status == "success"
        assert group.extraction.model_id == "m-2"
        assert group.extraction.total_cost == pytest.approx(0.12)
        assert len(group.extraction.line_items) == 2
        assert group.extraction.summary == {"totalActivities": 1}

    def test_failure_recorded_as_error_result(self, fake_extractor):
        gid = _ready_group(1)
        fake_extractor.queue(ExtractionOutcome.failure("Extraction timed out after 120s"))

        summary = es.trigger_group_extraction(gid)

        assert summary["status"] == "error"
        assert summary["error"] == "Extraction timed out after 120s"
        result = ExtractionResult.query.filter_by(group_id=gid).one()
        assert result.line_items == []

    def test_re_extraction_overwrites(self, fake_extractor):
        gid = _ready_group(1)
        fake_extractor.queue(
            _ok(lineItems=[_item()]),
            _ok(lineItems=[_item("P9", 7)], warnings=["w"]),
        )
        es.trigger_group_extraction(gid)
        summary = es.trigger_group_extraction(gid)

        assert summary["status"] == "warning"
        assert summary["warning_count"] == 1
        results = ExtractionResult.query.filter_by(group_id=gid).all()
        assert len(results) == 1
        assert results[0].line_items[0]["primaryCode"] == "P9"

    def test_error_then_success(self, fake_extractor):
        gid = _ready_group(1)
        fake_extractor.queue(ExtractionOutcome.failure("HTTP 500"), _ok(lineItems=[_item()]))
        es.trigger_group_extraction(gid)
        es.trigger_group_extraction(gid)
        group = db.session.get(CaptureGroup, gid)
        assert group.status == "success"
        assert group.extraction.error_message is None

    def test_image_hints_applied(self, fake_extractor):
        gid = _ready_group(2)
        fake_extractor.queue(_ok(
            lineItems=[_item()],
            imageChecks=[
                {"imageIndex": 0, "isLoadingList": True, "loadingListConfidence": 0.93},
                {"imageIndex": 1, "isLoadingList": False, "confidence": 0.2,
                 "notLoadingListReason": "photo of a pallet"},
                {"imageIndex": 7, "isLoadingList": False},
            ],
        ))
        es.trigger_group_extraction(gid)

        first, second = CaptureImage.query.filter_by(group_id=gid).order_by(CaptureImage.order_index)
        assert first.ai_classification_is_loading_list is True
        assert first.ai_classification_confidence == pytest.approx(0.93)
        assert second.ai_classification_is_loading_list is False
        assert second.ai_classification_reason == "photo of a pallet"

    def test_pending_group_cannot_extract(self, fake_extractor):
        s = _session()
        gid = cp.create_pending_group(s.id, 2).id
        with pytest.raises(ConflictError):
            es.trigger_group_extraction(gid)
        assert fake_extractor.calls == []

    def test_needs_attention_group_rejects_ingest(self):
        s = _session()
        gid = cp.create_pending_group(s.id, 1).id
        cp.record_group_upload_failure(gid)
        with pytest.raises(ConflictError):
            es.ingest_group_extraction(gid, _ok(lineItems=[_item()]))
        assert ExtractionResult.query.count() == 0

    def test_ingest_publishes_group_scope(self, fake_extractor, events):
        gid = _ready_group(1)
        sid = db.session.get(CaptureGroup, gid).session_id
        events.clear()
        fake_extractor.queue(_ok(lineItems=[_item()]))
        es.trigger_group_extraction(gid)
        assert ("groups", sid) in {(e.scope, e.key) for e in events}


class TestRunSessionExtraction:
    def test_advances_session_on_success(self, fake_extractor):
        s = _session()
        ready = {_ready_group(1, session=s), _ready_group(1, session=s)}
        cp.create_pending_group(s.id, 2)
        fake_extractor.queue(_ok(lineItems=[_item()]), ExtractionOutcome.failure("HTTP 500"))

        result = es.run_session_extraction(s.id)

        assert result["total_groups"] == 2
        assert result["successful_groups"] == 1
        assert result["failed_groups"] == 1
        assert {r["group_id"] for r in result["results"]} == ready
        assert sorted(r["status"] for r in result["results"]) == ["error", "success"]
        assert db.session.get(CaptureSession, s.id).status == "review_demand"

    def test_all_failed_leaves_session(self, fake_extractor):
        s = _session()
        _ready_group(1, session=s)
        fake_extractor.queue(ExtractionOutcome.failure("HTTP 500"))
        es.run_session_extraction(s.id)
        assert db.session.get(CaptureSession, s.id).status == "capturing_loading_lists"

    def test_does_not_move_session_backwards(self, fake_extractor):
        s = _session()
        _ready_group(1, session=s)
        s.status = "review_order"
        db.session.commit()
        fake_extractor.queue(_ok(lineItems=[_item()]))
        es.run_session_extraction(s.id)
        assert db.session.get(CaptureSession, s.id).status == "review_order"

    def test_group_ids_filter(self, fake_extractor):
        s = _session()
        first = _ready_group(1, session=s)
        _ready_group(1, session=s)
        fake_extractor.queue(_ok(lineItems=[_item()]))
        result = es.run_session_extraction(s.id, group_ids=[first])
        assert [r["group_id"] for r in result["results"]] == [first]
        assert len(fake_extractor.calls) == 1


# ═════════════════════════════════════════════════════════════════════════════
# Stations
# ═════════════════════════════════════════════════════════════════════════════


class TestClassifyStationExtraction:
    def test_complete_success_is_valid(self):
        status, fields = es.classify_station_extraction(
            _ok(status="success", productCode=" P1 ", minQty=2, maxQty=10, onHandQty=4.0),
        )
        assert status == "valid"
        assert fields == {
            "product_code": "P1", "error_message": None,
            "min_qty": 2, "max_qty": 10, "on_hand_qty": 4,
        }

    def test_incomplete_success_needs_attention(self):
        status, fields = es.classify_station_extraction(
            _ok(status="success", productCode="P1", minQty=2, onHandQty=4),
        )
        assert status == "needs_attention"
        assert fields["error_message"] == "Incomplete station data"
        assert fields["product_code"] == "P1"
        assert "on_hand_qty" not in fields

    def test_negative_quantity_is_incomplete(self):
        status, _ = es.classify_station_extraction(
            _ok(status="success", productCode="P1", minQty=-1, maxQty=10, onHandQty=4),
        )
        assert status == "needs_attention"

    def test_warning_keeps_message(self):
        status, fields = es.classify_station_extraction(
            _ok(status="warning", productCode="P1", message="sign partly covered"),
        )
        assert status == "needs_attention"
        assert fields["error_message"] == "sign partly covered"

    def test_call_failure(self):
        status, fields = es.classify_station_extraction(ExtractionOutcome.failure("HTTP 503"))
        assert status == "needs_attention"
        assert fields == {"error_message": "HTTP 503"}


class TestStationIngestion:
    def test_valid_station(self, fake_extractor):
        stid = _ready_station()
        fake_extractor.queue(_ok(status="success", productCode="P1", minQty=1, maxQty=8, onHandQty=3))

        result = es.trigger_station_extraction(stid)

        assert result["status"] == "valid"
        assert (result["min_qty"], result["max_qty"], result["on_hand_qty"]) == (1, 8, 3)
        assert result["model_id"] == "test-model"
        assert fake_extractor.calls[0][1] == ["memory://blobs/sign.jpg", "memory://blobs/stock.jpg"]

    def test_re_extraction_clears_quantities(self, fake_extractor):
        stid = _ready_station()
        fake_extractor.queue(
            _ok(status="success", productCode="P1", minQty=1, maxQty=8, onHandQty=3),
            _ok(status="warning", productCode="P1", message="stock hidden"),
        )
        es.trigger_station_extraction(stid)
        result = es.trigger_station_extraction(stid)

        assert result["status"] == "needs_attention"
        assert result["on_hand_qty"] is None
        assert result["max_qty"] is None
        assert result["product_code"] == "P1"

    def test_call_failure_keeps_product_code(self, fake_extractor):
        stid = _ready_station()
        fake_extractor.queue(
            _ok(status="success", productCode="P1", minQty=1, maxQty=8, onHandQty=3),
            ExtractionOutcome.failure("Extraction timed out after 120s"),
        )
        es.trigger_station_extraction(stid)
        result = es.trigger_station_extraction(stid)

        assert result["status"] == "needs_attention"
        assert result["product_code"] == "P1"
        assert result["error_message"] == "Extraction timed out after 120s"

    def test_pending_station_cannot_extract(self, fake_extractor):
        s = _session("capturing_inventory")
        stid = cp.create_pending_station(s.id).id
        cp.record_station_upload_completion(stid, "sign", "memory://blobs/sign.jpg")
        with pytest.raises(ConflictError):
            es.trigger_station_extraction(stid)
        assert fake_extractor.calls == []

    def test_needs_attention_without_both_slots(self, fake_extractor):
        s = _session("capturing_inventory")
        stid = cp.create_pending_station(s.id).id
        cp.record_station_upload_failure(stid, slot="sign")
        with pytest.raises(ConflictError):
            es.trigger_station_extraction(stid)

    def test_captured_after_failure_can_extract(self, fake_extractor):
        s = _session("capturing_inventory")
        stid = cp.create_pending_station(s.id).id
        cp.record_station_upload_failure(stid, slot="stock")
        cp.record_station_upload_completion(stid, "sign", "memory://blobs/sign.jpg")
        cp.record_station_upload_completion(stid, "stock", "memory://blobs/stock.jpg")
        fake_extractor.queue(_ok(status="success", productCode="P1", minQty=1, maxQty=8, onHandQty=3))

        result = es.trigger_station_extraction(stid)

        assert result["status"] == "valid"
        assert db.session.get(StationCapture, stid).error_message is None
