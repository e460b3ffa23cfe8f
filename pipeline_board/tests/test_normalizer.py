"""
Pipeline Board — Entity Normalizer Tests
Tests: stage coercion, kind detection, graceful degradation, references, drops.
Run: pytest pipeline_board/tests/test_normalizer.py -v
"""

from datetime import date
from pipeline_board.models import ItemKind, Stage, STAGES, kind_from_id
from pipeline_board.services.normalizer import (
    days_in_stage,
    normalize_item,
    normalize_pipeline,
    synthesize_reference,
)
from pipeline_board.services import normalizer
from .fake_crm import raw_customer, raw_job, raw_project


# ═══════════════════════════════════════════════════════════════
# 1. STAGES
# ═══════════════════════════════════════════════════════════════

class TestStageNormalization:
    def test_lowercase_untrimmed_stage(self):
        """'accepted ' -> Accepted (case-insensitive match)"""
        item = normalize_item(raw_customer("a1b2c3", stage="accepted "))
        assert item.stage == Stage.ACCEPTED

    def test_unknown_stage_coerced_to_lead(self):
        item = normalize_item(raw_job("j1", stage="Consultation"))
        assert item.stage == Stage.LEAD

    def test_missing_stage_coerced_to_lead(self):
        row = raw_job("j1")
        del row["stage"]
        assert normalize_item(row).stage == Stage.LEAD

    def test_stage_closure_over_messy_feed(self):
        """Every normalized stage is a member of the enumeration"""
        feed = [
            raw_customer("c1", stage=None),
            raw_customer("c2", stage="  quote"),
            raw_job("j1", stage=17),
            raw_project("p1", stage="Nope"),
            raw_job("j2", stage="Production"),
        ]
        items = normalize_pipeline(feed)
        assert len(items) == 5
        assert all(item.stage in STAGES for item in items)


# ═══════════════════════════════════════════════════════════════
# 2. KINDS
# ═══════════════════════════════════════════════════════════════

class TestKinds:
    def test_customer_item(self):
        item = normalize_item(raw_customer("c-0001", stage="Survey", salesperson="sam@example.com"))
        assert item.kind == ItemKind.CUSTOMER
        assert item.id == "customer-c-0001"
        assert item.entity_id == "c-0001"
        assert item.salesperson == "sam@example.com"
        assert item.work_item is None

    def test_job_item(self):
        item = normalize_item(raw_job("123", cid="c9", stage="Quote", quote_price=12500, salesperson_name="Sam"))
        assert item.kind == ItemKind.JOB
        assert item.id == "job-123"
        assert item.entity_id == "123"
        assert item.quote_price == 12500
        assert item.salesperson == "Sam"
        assert item.name == "Customer c9"

    def test_project_prefix_selects_project_kind(self):
        item = normalize_item(raw_project("77", cid="c4"))
        assert item.kind == ItemKind.PROJECT
        assert item.entity_id == "77"
        assert item.name == "Customer c4 - Main kitchen"
        assert item.job_type == "Kitchen"
        assert item.measure_date == "2026-03-01"

    def test_project_payload_under_job_key(self):
        """Either key may carry the nested payload"""
        item = normalize_item(raw_project("78", key="job"))
        assert item.kind == ItemKind.PROJECT
        assert item.work_item.project_name == "Main kitchen"

    def test_salesperson_falls_back_to_customer(self):
        row = raw_job("5", customer_fields={"salesperson": "Alex"})
        assert normalize_item(row).salesperson == "Alex"

    def test_id_prefix_matches_kind(self):
        """Kind derived from the id prefix equals the assigned kind"""
        feed = [raw_customer("c1"), raw_job("j1"), raw_project("p1"), {**raw_job("j2"), "job": None}]
        for item in normalize_pipeline(feed):
            assert kind_from_id(item.id) == item.kind


# ═══════════════════════════════════════════════════════════════
# 3. GRACEFUL DEGRADATION
# ═══════════════════════════════════════════════════════════════

class TestDegradation:
    def test_job_without_payload_becomes_customer(self):
        """Discriminant 'job' but no job/project payload"""
        row = raw_job("j1", cid="c42", stage="Design")
        del row["job"]
        item = normalize_item(row)
        assert item is not None
        assert item.kind == ItemKind.CUSTOMER
        assert item.id == "customer-c42"
        assert item.stage == Stage.DESIGN
        assert item.reference == "CUST-C42"

    def test_empty_payload_also_degrades(self):
        row = raw_job("j1", stage="bogus")
        row["job"] = {}
        item = normalize_item(row)
        assert item.kind == ItemKind.CUSTOMER
        assert item.stage == Stage.LEAD

    def test_degraded_duplicate_keeps_first(self):
        customer_row = raw_customer("c1", stage="Survey")
        degraded = raw_job("j1", cid="c1", stage="Quote")
        del degraded["job"]
        items = normalize_pipeline([customer_row, degraded])
        assert [i.id for i in items] == ["customer-c1"]
        assert items[0].stage == Stage.SURVEY


# ═══════════════════════════════════════════════════════════════
# 4. MALFORMED ROWS
# ═══════════════════════════════════════════════════════════════

class TestMalformedRows:
    def test_missing_customer_is_dropped(self):
        row = raw_job("j1")
        del row["customer"]
        assert normalize_item(row) is None

    def test_missing_id_is_dropped(self):
        row = raw_customer("c1")
        del row["id"]
        assert normalize_item(row) is None

    def test_non_dict_rows_dropped_without_failing_the_feed(self):
        items = normalize_pipeline([None, "junk", raw_customer("c1"), {"id": "job-1", "customer": "x"}])
        assert [i.id for i in items] == ["customer-c1"]

    def test_non_list_payload(self):
        assert normalize_pipeline({"error": "nope"}) == []


# ═══════════════════════════════════════════════════════════════
# 5. REFERENCES / DERIVED FIELDS
# ═══════════════════════════════════════════════════════════════

class TestReferences:
    def test_synthesized_references(self):
        assert synthesize_reference(ItemKind.CUSTOMER, "abcdef12") == "CUST-EF12"
        assert synthesize_reference(ItemKind.JOB, "9f8e7d6c") == "JOB-7D6C"
        assert synthesize_reference(ItemKind.PROJECT, None) == "PROJ-NEW"

    def test_server_reference_wins(self):
        item = normalize_item(raw_job("abcdef", job_reference="K-2041"))
        assert item.reference == "K-2041"

    def test_job_reference_synthesized(self):
        assert normalize_item(raw_job("abcdef")).reference == "JOB-CDEF"

    def test_project_reference_synthesized(self):
        assert normalize_item(raw_project("xyz123")).reference == "PROJ-Z123"

    def test_customer_job_types_joined(self):
        item = normalize_item(raw_customer("c1", project_types=["Kitchen", "Bedroom"]))
        assert item.job_type == "Kitchen, Bedroom"

    def test_days_in_stage(self):
        item = normalize_item(raw_job("j1", created_at="2026-10-01T09:30:00Z"))
        assert days_in_stage(item, today=date(2026, 10, 18)) == 17

    def test_days_in_stage_without_date(self):
        assert days_in_stage(normalize_item(raw_job("j1")), today=date(2026, 10, 18)) == 0
        bad = normalize_item(raw_job("j2", created_at="yesterday"))
        assert days_in_stage(bad, today=date(2026, 10, 18)) == 0


class TestIdempotence:
    def test_normalizing_twice_is_identical(self):
        """Same raw payload -> structurally identical items"""
        feed = [raw_customer("c1", stage="Quote"), raw_job("j1", quote_price=10), raw_project("p1")]
        assert normalize_pipeline(feed) == normalize_pipeline(feed)


# ═══════════════════════════════════════════════════════════════
# 6. UNPARSEABLE DISPLAY FIELDS
# ═══════════════════════════════════════════════════════════════

class TestDisplayFields:
    def test_unparseable_price_keeps_the_card(self):
        items = normalize_pipeline([raw_job("j1", quote_price="TBC")])
        assert [i.id for i in items] == ["job-j1"]
        assert items[0].quote_price is None

    def test_formatted_price_is_parsed(self):
        item = normalize_item(raw_job("j1", quote_price="12,500.50"))
        assert item.quote_price == 12500.5

    def test_odd_customer_fields(self):
        row = raw_customer("c1", customer_fields={
            "phone": 7700900000,
            "address": {"line1": "1 High Street"},
            "marketing_opt_in": "maybe",
            "project_types": "Kitchen",
        })
        item = normalize_item(row)
        assert item is not None
        assert item.customer.phone == "7700900000"
        assert item.customer.address is None
        assert item.customer.marketing_opt_in is None
        assert item.job_type is None

    def test_paid_flags_from_strings(self):
        row = raw_job("j1")
        row["job"]["deposit1_paid"] = "no"
        row["job"]["deposit2_paid"] = "yes"
        item = normalize_item(row)
        assert item.deposit1_paid is False
        assert item.deposit2_paid is True

    def test_bad_project_count_defaults_to_zero(self):
        items = normalize_pipeline([raw_customer("c1"), raw_customer("c2", project_count="several")])
        assert [i.id for i in items] == ["customer-c1", "customer-c2"]
        assert items[1].project_count == 0


class TestUnbuildableRows:
    def test_invalid_item_is_dropped_not_raised(self, monkeypatch):
        """One row failing item validation never fails the whole feed"""
        monkeypatch.setattr(normalizer, "_count", lambda value: 0 if value is None else value)
        items = normalize_pipeline([raw_customer("c1"), raw_customer("c2", project_count="several")])
        assert [i.id for i in items] == ["customer-c1"]
