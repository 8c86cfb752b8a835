from __future__ import annotations

from safety_audit.models import CheckStatus, GroundedStatus, SourceKind, VehicleRecord
from safety_audit.processors.normalizer import FeedNormalizer
from safety_audit.processors.vehicle_store import VehicleStore

DD = SourceKind.DIVE_DEEP
VA = SourceKind.VIN_AUDIT
GR = SourceKind.GROUNDED


def test_scenario_merges_three_feeds_into_one_record(reconciler) -> None:
    normalizer = FeedNormalizer()
    fragments = []
    for rows, kind in (
        ([{"plate": "XYZ1", "status": "Pass"}], DD),
        ([{"plate": "xyz1", "status": "Fail"}], VA),
        ([], GR),
    ):
        batch, warnings = normalizer.normalize(rows, kind)
        assert warnings == []
        fragments.extend(batch)

    store = reconciler.merge(VehicleStore(), fragments)

    assert len(store) == 1
    record = store.lookup("XYZ1")
    assert record.plate == "XYZ1"
    assert record.dive_deep_status is CheckStatus.PASS
    assert record.vin_audit_status is CheckStatus.FAIL
    assert record.grounded_status is GroundedStatus.UNKNOWN


def test_merge_is_idempotent(reconciler, make_fragment) -> None:
    fragments = [
        make_fragment("A1", DD, status=CheckStatus.PASS, display_name="Van"),
        make_fragment("A1", GR, grounded=GroundedStatus.NO, extra_info={"Depot": "North"}),
        make_fragment("B2", VA, status=CheckStatus.FAIL),
    ]

    once = reconciler.merge(VehicleStore(), fragments)
    twice = reconciler.merge(once, fragments)

    assert twice == once
    assert reconciler.stats.records_unchanged == 2


def test_other_kinds_fields_are_never_touched(reconciler, make_fragment) -> None:
    existing = VehicleStore([
        VehicleRecord(
            plate="A1",
            vin_audit_status=CheckStatus.FAIL,
            grounded_status=GroundedStatus.YES,
            extra_info={"Depot": "North"},
        )
    ])

    merged = reconciler.merge(existing, [make_fragment("A1", DD, status=CheckStatus.PASS)])

    record = merged.lookup("A1")
    assert record.dive_deep_status is CheckStatus.PASS
    assert record.vin_audit_status is CheckStatus.FAIL
    assert record.grounded_status is GroundedStatus.YES
    assert record.extra_info == {"Depot": "North"}


def test_higher_row_ordinal_wins_within_a_kind(reconciler, make_fragment) -> None:
    fragments = [
        make_fragment("A1", DD, ordinal=5, status=CheckStatus.FAIL),
        make_fragment("A1", DD, ordinal=2, status=CheckStatus.PASS),
    ]

    merged = reconciler.merge(VehicleStore(), fragments)

    assert merged.lookup("A1").dive_deep_status is CheckStatus.FAIL


def test_later_batch_supersedes_earlier_upload(reconciler, make_fragment) -> None:
    first = reconciler.merge(VehicleStore(), [
        make_fragment("A1", GR, grounded=GroundedStatus.YES, extra_info={"Depot": "North", "Reason": "Brakes"}),
    ])
    second = reconciler.merge(first, [
        make_fragment("A1", GR, grounded=GroundedStatus.NO, extra_info={"Depot": "South"}),
    ])

    record = second.lookup("A1")
    assert record.grounded_status is GroundedStatus.NO
    assert record.extra_info == {"Depot": "South"}


def test_display_name_comes_from_first_non_empty_name(reconciler, make_fragment) -> None:
    merged = reconciler.merge(VehicleStore(), [
        make_fragment("A1", DD, ordinal=1, status=CheckStatus.PASS, display_name=""),
        make_fragment("A1", VA, ordinal=1, status=CheckStatus.PASS, display_name="Van 7"),
        make_fragment("A1", GR, ordinal=1, grounded=GroundedStatus.NO, display_name="Other"),
    ])
    assert merged.lookup("A1").display_name == "Van 7"

    again = reconciler.merge(merged, [
        make_fragment("A1", DD, status=CheckStatus.PASS, display_name=""),
        make_fragment("A1", VA, status=CheckStatus.PASS, display_name="Renamed"),
    ])
    assert again.lookup("A1").display_name == "Van 7"


def test_disjoint_batches_are_additive(reconciler, make_fragment) -> None:
    batch_one = reconciler.merge(VehicleStore(), [
        make_fragment("A1", DD, status=CheckStatus.PASS),
        make_fragment("A2", VA, status=CheckStatus.FAIL),
    ])
    before = {record.plate: record for record in batch_one.all()}

    batch_two = reconciler.merge(batch_one, [make_fragment("B1", GR, grounded=GroundedStatus.YES)])

    assert len(batch_two) == 3
    for plate, record in before.items():
        assert batch_two.lookup(plate) == record


def test_merge_leaves_input_store_untouched(reconciler, make_fragment) -> None:
    existing = VehicleStore([VehicleRecord(plate="A1")])
    snapshot = existing.copy()

    merged = reconciler.merge(existing, [
        make_fragment("A1", DD, status=CheckStatus.FAIL),
        make_fragment("C3", DD, status=CheckStatus.PASS),
    ])

    assert existing == snapshot
    assert "C3" not in existing
    assert merged.lookup("A1").dive_deep_status is CheckStatus.FAIL


def test_merge_timestamp_only_moves_when_content_changes(reconciler, clock, make_fragment) -> None:
    first = reconciler.merge(VehicleStore(), [make_fragment("A1", DD, status=CheckStatus.PASS)])
    stamped = first.lookup("A1").last_merged_at
    assert stamped is not None

    unchanged = reconciler.merge(first, [make_fragment("A1", DD, status=CheckStatus.PASS)])
    assert unchanged.lookup("A1").last_merged_at == stamped

    changed = reconciler.merge(unchanged, [make_fragment("A1", DD, status=CheckStatus.FAIL)])
    assert changed.lookup("A1").last_merged_at > stamped


def test_raw_plates_join_with_user_typed_lookup(reconciler) -> None:
    fragments, _ = FeedNormalizer().normalize(
        [{"Plate": " ABC123 ", "Status": "pass"}], DD
    )

    store = reconciler.merge(VehicleStore(), fragments)

    assert store.lookup("abc 123").plate == "ABC123"


def test_merge_stats_count_created_and_updated(reconciler, make_fragment) -> None:
    first = reconciler.merge(VehicleStore(), [make_fragment("A1", DD, status=CheckStatus.PASS)])
    reconciler.merge(first, [
        make_fragment("A1", VA, status=CheckStatus.PASS),
        make_fragment("B1", VA, status=CheckStatus.PASS),
    ])

    stats = reconciler.stats.to_dict()
    assert stats["records_created"] == 1
    assert stats["records_updated"] == 1
    assert stats["fragments_applied"] == 2
    assert stats["by_source"] == {"VinAudit": 2}
