"""Tests for the inventory station side of the capture pipeline.

A station fills two independent slots (sign, stock) and is promoted to
'ready' once both are present, whatever the arrival order.
"""

import pytest

from fieldcapture.core.exceptions import ValidationError
from fieldcapture.integrations.extraction_gateway import ExtractionOutcome
from fieldcapture.integrations.blob_store import station_image_path
from fieldcapture.models import db
from fieldcapture.models.session import CaptureSession
from fieldcapture.models.station import StationCapture
from fieldcapture.services import capture_pipeline as cp
from fieldcapture.services.capture_pipeline import UploadFile
from fieldcapture.services.extraction_service import trigger_station_extraction
from fieldcapture.services.report_service import load_station_inputs
from fieldcapture.services.workflow_compute import compute_order_items


def _station() -> StationCapture:
    s = CaptureSession(status="capturing_inventory")
    db.session.add(s)
    db.session.commit()
    return cp.create_pending_station(s.id)


def _file(name="sign.jpg"):
    return UploadFile(filename=name, content_type="image/jpeg", data=b"img", width=600, height=800)


def _reload(station_id) -> StationCapture:
    db.session.expire_all()
    return db.session.get(StationCapture, station_id)


class TestStationCompletion:
    def test_created_pending_and_empty(self):
        st = _station()
        assert st.status == "pending"
        assert st.blob_urls == []
        assert st.is_captured is False

    @pytest.mark.parametrize("first,second", [("sign", "stock"), ("stock", "sign")])
    def test_promotes_when_both_slots_filled(self, first, second):
        st = _station()
        assert cp.record_station_upload_completion(st.id, first, f"memory://blobs/{first}.jpg") is False
        assert _reload(st.id).status == "pending"
        assert cp.record_station_upload_completion(st.id, second, f"memory://blobs/{second}.jpg") is True
        assert _reload(st.id).status == "ready"

    def test_same_slot_twice_does_not_promote(self):
        st = _station()
        cp.record_station_upload_completion(st.id, "sign", "memory://blobs/a.jpg")
        assert cp.record_station_upload_completion(st.id, "sign", "memory://blobs/b.jpg") is False
        station = _reload(st.id)
        assert station.status == "pending"
        assert station.sign_blob_url == "memory://blobs/b.jpg"

    def test_duplicate_after_ready(self):
        st = _station()
        cp.record_station_upload_completion(st.id, "sign", "memory://blobs/s.jpg")
        cp.record_station_upload_completion(st.id, "stock", "memory://blobs/k.jpg")
        assert cp.record_station_upload_completion(st.id, "stock", "memory://blobs/k.jpg") is False
        assert _reload(st.id).status == "ready"

    def test_slot_dimensions_recorded(self):
        st = _station()
        cp.record_station_upload_completion(st.id, "stock", "memory://blobs/k.jpg", width=300, height=400)
        station = _reload(st.id)
        assert (station.stock_width, station.stock_height) == (300, 400)
        assert station.stock_uploaded_at is not None
        assert station.sign_uploaded_at is None

    def test_unknown_slot(self):
        st = _station()
        with pytest.raises(ValidationError):
            cp.record_station_upload_completion(st.id, "label", "memory://blobs/x.jpg")

    def test_completion_publishes_station_scope(self, events):
        st = _station()
        events.clear()
        cp.record_station_upload_completion(st.id, "sign", "memory://blobs/s.jpg")
        assert ("stations", st.session_id) in {(e.scope, e.key) for e in events}

    def test_duplicate_publishes_nothing(self, events):
        st = _station()
        cp.record_station_upload_completion(st.id, "sign", "memory://blobs/s.jpg")
        events.clear()
        assert cp.record_station_upload_completion(st.id, "sign", "memory://blobs/s.jpg") is False
        assert events == []

    @pytest.mark.parametrize("width,height", [("abc", 400), (300, -1), (0, 400), (True, 400), (300, 4.5)])
    def test_bad_dimensions_rejected(self, width, height):
        st = _station()
        with pytest.raises(ValidationError):
            cp.record_station_upload_completion(st.id, "sign", "memory://blobs/s.jpg", width=width, height=height)
        assert _reload(st.id).sign_blob_url is None


class TestStationFailure:
    def test_failure_message_names_slot(self):
        st = _station()
        assert cp.record_station_upload_failure(st.id, slot="stock", reason="timeout") is True
        station = _reload(st.id)
        assert station.status == "needs_attention"
        assert station.error_message == "stock: timeout"

    def test_failure_without_slot(self):
        st = _station()
        cp.record_station_upload_failure(st.id)
        assert _reload(st.id).error_message == "upload_failed"

    def test_late_completion_after_failure(self):
        st = _station()
        cp.record_station_upload_completion(st.id, "sign", "memory://blobs/s.jpg")
        cp.record_station_upload_failure(st.id, slot="stock")
        assert cp.record_station_upload_completion(st.id, "stock", "memory://blobs/k.jpg") is False
        station = _reload(st.id)
        assert station.status == "needs_attention"
        assert station.is_captured is True

    def test_failure_after_ready_ignored(self):
        st = _station()
        cp.record_station_upload_completion(st.id, "sign", "memory://blobs/s.jpg")
        cp.record_station_upload_completion(st.id, "stock", "memory://blobs/k.jpg")
        assert cp.record_station_upload_failure(st.id, slot="sign") is False
        assert _reload(st.id).status == "ready"


def _extracted_station(fake_extractor, status="success", on_hand=2):
    st = _station()
    cp.record_station_upload_completion(st.id, "sign", "memory://blobs/sign1.jpg")
    cp.record_station_upload_completion(st.id, "stock", "memory://blobs/stock1.jpg")
    fake_extractor.queue(ExtractionOutcome(ok=True, data={
        "status": status, "productCode": "P1", "minQty": 1, "maxQty": 10, "onHandQty": on_hand,
    }))
    trigger_station_extraction(st.id)
    return st.id


class TestStationRecapture:
    def test_new_stock_photo_clears_stale_counts(self, fake_extractor):
        stid = _extracted_station(fake_extractor)
        assert _reload(stid).status == "valid"

        promoted = cp.record_station_upload_completion(stid, "stock", "memory://blobs/stock2.jpg")

        station = _reload(stid)
        assert promoted is True
        assert station.status == "ready"
        assert station.stock_blob_url == "memory://blobs/stock2.jpg"
        assert (station.product_code, station.on_hand_qty, station.max_qty, station.min_qty) == (None, None, None, None)
        assert station.extracted_at is None

    def test_recaptured_station_no_longer_drives_orders(self, fake_extractor):
        stid = _extracted_station(fake_extractor)
        sid = _reload(stid).session_id
        demand = [{"product_code": "P1", "description": None, "demand_qty": 5, "sources": []}]
        before = compute_order_items(demand, load_station_inputs(sid))
        assert before["computed"][0]["recommended_order_qty"] == 3

        cp.record_station_upload_completion(stid, "stock", "memory://blobs/stock2.jpg")

        after = compute_order_items(demand, load_station_inputs(sid))
        assert after["computed"] == []
        assert after["skipped"][0]["reason"] == "no_station"

    def test_needs_attention_station_recaptured(self, fake_extractor):
        stid = _extracted_station(fake_extractor, status="warning")
        assert _reload(stid).status == "needs_attention"
        cp.record_station_upload_completion(stid, "sign", "memory://blobs/sign2.jpg")
        station = _reload(stid)
        assert station.status == "ready"
        assert station.error_message is None

    def test_same_photo_again_keeps_extraction(self, fake_extractor):
        stid = _extracted_station(fake_extractor)
        assert cp.record_station_upload_completion(stid, "stock", "memory://blobs/stock1.jpg") is False
        station = _reload(stid)
        assert station.status == "valid"
        assert station.on_hand_qty == 2

    def test_server_upload_resets_even_on_same_path(self, fake_extractor):
        stid = _station().id
        cp.upload_station_images(stid, sign_file=_file(), stock_file=_file())
        fake_extractor.queue(ExtractionOutcome(ok=True, data={
            "status": "success", "productCode": "P1", "minQty": 1, "maxQty": 10, "onHandQty": 4,
        }))
        trigger_station_extraction(stid)
        assert _reload(stid).status == "valid"

        result = cp.upload_station_images(stid, stock_file=_file())

        assert result["promoted"] is True
        assert result["station"]["status"] == "ready"
        assert result["station"]["on_hand_qty"] is None

    def test_upload_failure_station_is_not_reset(self):
        st = _station()
        cp.record_station_upload_failure(st.id, slot="sign", reason="timeout")
        cp.record_station_upload_completion(st.id, "sign", "memory://blobs/s.jpg")
        cp.record_station_upload_completion(st.id, "stock", "memory://blobs/k.jpg")
        assert _reload(st.id).status == "needs_attention"


class TestUploadStationImages:
    def test_both_slots(self, blob_store):
        st = _station()
        result = cp.upload_station_images(st.id, sign_file=_file("s.jpg"), stock_file=_file("k.webp"))
        assert result["uploaded"] == ["sign", "stock"]
        assert result["failed"] == []
        assert result["promoted"] is True
        assert result["station"]["status"] == "ready"
        assert result["station"]["stock_blob_url"].endswith(
            station_image_path(st.session_id, st.id, "stock", "webp")
        )
        assert blob_store.exists(result["station"]["sign_blob_url"])

    def test_one_slot_at_a_time(self):
        st = _station()
        first = cp.upload_station_images(st.id, stock_file=_file())
        assert first["promoted"] is False
        second = cp.upload_station_images(st.id, sign_file=_file())
        assert second["promoted"] is True

    def test_put_failure_marks_needs_attention(self, blob_store):
        st = _station()
        blob_store.fail_puts.add(station_image_path(st.session_id, st.id, "stock", "jpg"))
        result = cp.upload_station_images(st.id, sign_file=_file(), stock_file=_file())
        assert result["uploaded"] == ["sign"]
        assert result["failed"] == ["stock"]
        assert result["promoted"] is False
        assert result["station"]["status"] == "needs_attention"
        assert result["station"]["error_message"].startswith("stock: ")

    def test_requires_a_file(self):
        st = _station()
        with pytest.raises(ValidationError):
            cp.upload_station_images(st.id)


class TestDeleteStation:
    def test_deletes_row_and_blobs(self, blob_store):
        stid = _station().id
        cp.upload_station_images(stid, sign_file=_file(), stock_file=_file())
        result = cp.delete_station(stid)
        assert result["deleted"] == 2
        assert db.session.get(StationCapture, stid) is None
        assert blob_store.objects == {}
