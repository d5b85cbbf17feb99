# tests/unit/services/position_service/services/test_position_calculation_service.py
import random
from collections import defaultdict
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from position_common.exceptions import StorageFailure, TransactionValidationError
from position_common.position_repository import PositionRepository
from position_common.transaction_repository import TransactionRepository
from src.services.position_service.app.dtos.transaction_dto import TransactionRequest
from src.services.position_service.app.services.batch_worker import BatchWorker
from src.services.position_service.app.services.position_calculation_service import (
    PositionCalculationService,
)


@pytest.fixture
def service(session_factory) -> PositionCalculationService:
    return PositionCalculationService(session_factory=session_factory)


def txn(trade_id, version, security_code, quantity, action="INSERT", side="BUY", transaction_id=None):
    return TransactionRequest(
        transaction_id=transaction_id,
        trade_id=trade_id,
        version=version,
        security_code=security_code,
        quantity=quantity,
        action=action,
        side=side,
    )


def snapshot(positions):
    return [(p.security_code, p.quantity) for p in positions]


def db_down():
    return OperationalError("SELECT 1", {}, Exception("db down"))


# --- Worked examples ---

def test_single_insert(service):
    assert snapshot(service.process_transaction(txn(1, 1, "REL", 50))) == [("REL", 50)]


def test_update_replaces_previous_version(service):
    service.process_transaction(txn(1, 1, "REL", 50))

    positions = service.process_transaction(txn(1, 2, "REL", 60, action="UPDATE"))

    assert snapshot(positions) == [("REL", 60)]


def test_cancel_flattens_position(service):
    service.process_transaction(txn(2, 1, "ITC", 40, side="SELL"))

    positions = service.process_transaction(txn(2, 2, "ITC", 30, action="CANCEL"))

    assert snapshot(positions) == []


def test_bulk_batch_resolves_every_trade(service):
    """
    GIVEN six transactions submitted as one batch
    WHEN the batch is processed
    THEN only INF and REL hold positions, in code order.
    """
    batch = [
        txn(1, 1, "REL", 50),
        txn(2, 1, "ITC", 40, side="SELL"),
        txn(3, 1, "INF", 70),
        txn(1, 2, "REL", 60, action="UPDATE"),
        txn(2, 2, "ITC", 30, action="CANCEL"),
        txn(4, 1, "INF", 20, side="SELL"),
    ]

    assert snapshot(service.process_bulk_transactions(batch)) == [("INF", 50), ("REL", 60)]


def test_edit_of_superseded_version_is_rejected(service):
    """
    GIVEN the sample ledger, where transaction 1 is version 1 of trade 1
    WHEN transaction 1 is edited
    THEN the edit is rejected naming version 2 and nothing changes.
    """
    service.load_sample_data()
    before = service.get_all_transactions()

    with pytest.raises(TransactionValidationError) as exc_info:
        service.process_transaction(txn(1, 1, "REL", 999, transaction_id=1))

    assert exc_info.value.latest_version == 2
    assert exc_info.value.attempted_version == 1
    assert "latest transaction version 2" in str(exc_info.value)
    assert service.get_all_transactions() == before
    assert snapshot(service.get_all_positions()) == [("INF", 50), ("REL", 60)]


# --- Ingestion ---

def test_generated_transaction_ids_follow_the_ledger(service):
    service.process_transaction(txn(1, 1, "REL", 50))
    service.process_transaction(txn(2, 1, "ITC", 10))

    assert [t.transaction_id for t in service.get_all_transactions()] == [1, 2]


def test_batch_generates_ids_above_supplied_ones(service):
    service.process_transaction(txn(1, 1, "REL", 50))

    service.process_bulk_transactions([
        txn(2, 1, "ITC", 10, transaction_id=10),
        txn(3, 1, "INF", 10),
        txn(4, 1, "INF", 10),
    ])

    assert [t.transaction_id for t in service.get_all_transactions()] == [1, 10, 11, 12]


def test_batch_with_repeated_ids_is_rejected_without_writes(service):
    with pytest.raises(TransactionValidationError) as exc_info:
        service.process_bulk_transactions([
            txn(1, 1, "REL", 50, transaction_id=5),
            txn(2, 1, "ITC", 10, transaction_id=5),
        ])

    assert exc_info.value.transaction_id == 5
    assert service.get_all_transactions() == []
    assert service.get_processing_state().last_processed_transaction_id == 0


def test_batch_with_existing_id_is_rejected_without_writes(service):
    service.process_transaction(txn(1, 1, "REL", 50))

    with pytest.raises(TransactionValidationError):
        service.process_bulk_transactions([
            txn(2, 1, "ITC", 10),
            txn(1, 2, "REL", 60, action="UPDATE", transaction_id=1),
        ])

    assert len(service.get_all_transactions()) == 1
    assert snapshot(service.get_all_positions()) == [("REL", 50)]


def test_unknown_transaction_id_is_inserted_as_given(service):
    service.process_transaction(txn(1, 1, "REL", 50, transaction_id=42))

    assert [t.transaction_id for t in service.get_all_transactions()] == [42]


# --- Edits ---

def test_edit_moving_security_recomputes_both_codes(service):
    """
    GIVEN trade 1 on REL
    WHEN its only transaction is edited onto INF
    THEN REL is flattened, INF carries the trade and the checkpoint stays put.
    """
    service.process_transaction(txn(1, 1, "REL", 50))
    service.process_transaction(txn(2, 1, "REL", 5))
    checkpoint = service.get_processing_state().last_processed_transaction_id

    positions = service.process_transaction(txn(1, 1, "INF", 50, transaction_id=1))

    assert snapshot(positions) == [("INF", 50), ("REL", 5)]
    assert service.get_processing_state().last_processed_transaction_id == checkpoint
    assert snapshot(service.force_full_recalculation()) == snapshot(positions)


def test_edit_of_latest_version_keeps_identity(service):
    service.process_transaction(txn(1, 1, "REL", 50))
    service.process_transaction(txn(1, 2, "REL", 60, action="UPDATE"))

    service.process_transaction(txn(1, 2, "REL", 80, action="UPDATE", side="SELL", transaction_id=2))

    records = service.get_all_transactions()
    assert [(r.id, r.transaction_id, r.quantity, r.side.value) for r in records] == [
        (records[0].id, 1, 50, "BUY"),
        (records[1].id, 2, 80, "SELL"),
    ]
    assert snapshot(service.get_all_positions()) == [("REL", -80)]


# --- Reads and operations ---

def test_transactions_are_flagged_with_latest_version(service):
    service.load_sample_data()

    flags = [(t.transaction_id, t.is_latest_version) for t in service.get_all_transactions()]

    assert flags == [(1, False), (2, False), (3, True), (4, True), (5, True), (6, True)]


def test_processing_state_defaults_to_zero(service):
    state = service.get_processing_state()

    assert state.state_key == "POSITION_CALCULATION"
    assert state.last_processed_transaction_id == 0
    assert state.last_processed_timestamp is not None


def test_load_sample_data_replaces_existing_state(service):
    service.process_transaction(txn(9, 1, "AXB", 5))

    first = service.load_sample_data()
    second = service.load_sample_data()

    assert snapshot(first) == snapshot(second) == [("INF", 50), ("REL", 60)]
    assert len(service.get_all_transactions()) == 6


def test_clear_all_data(service):
    service.load_sample_data()

    service.clear_all_data()

    assert service.get_all_positions() == []
    assert service.get_all_transactions() == []
    assert service.get_processing_state().last_processed_transaction_id == 0


def test_recalculate_delta_without_new_rows_is_a_no_op(service):
    service.load_sample_data()

    assert snapshot(service.recalculate_delta()) == [("INF", 50), ("REL", 60)]


# --- Failures ---

def test_read_failure_is_reported_as_storage_failure(service):
    with patch.object(TransactionRepository, "find_all", side_effect=db_down()):
        with pytest.raises(StorageFailure):
            service.get_all_transactions()


def test_write_failure_rolls_back_the_whole_operation(service):
    """
    GIVEN the position store fails mid-recalculation
    WHEN a transaction is submitted
    THEN neither the transaction nor the checkpoint is persisted.
    """
    with patch.object(PositionRepository, "upsert", side_effect=db_down()):
        with pytest.raises(StorageFailure):
            service.process_transaction(txn(1, 1, "REL", 50))

    assert service.get_all_transactions() == []
    assert service.get_all_positions() == []
    assert service.get_processing_state().last_processed_transaction_id == 0


# --- Batch worker ---

def test_submit_bulk_transactions_resolves_on_worker(session_factory):
    worker = BatchWorker(max_workers=1)
    service = PositionCalculationService(session_factory=session_factory, batch_worker=worker)
    try:
        future = service.submit_bulk_transactions([txn(1, 1, "REL", 50), txn(2, 1, "INF", 20)])
        assert snapshot(future.result(timeout=10)) == [("INF", 20), ("REL", 50)]
    finally:
        worker.shutdown()


def test_submit_bulk_transactions_requires_worker(service):
    with pytest.raises(RuntimeError):
        service.submit_bulk_transactions([txn(1, 1, "REL", 50)])


# --- Delta and full agree ---

def expected_positions(records):
    """Positions computed directly from the ledger, in store order."""
    trades = defaultdict(list)
    for seq, record in enumerate(records):
        trades[record["trade_id"]].append((record["version"], seq, record))

    totals = defaultdict(int)
    for versions in trades.values():
        if any(r["action"] == "CANCEL" for _, _, r in versions):
            continue
        _, _, latest = max(versions, key=lambda v: (v[0], v[1]))
        sign = 1 if latest["side"] == "BUY" else -1
        totals[latest["security_code"]] += sign * latest["quantity"]
    return sorted((code, qty) for code, qty in totals.items() if qty != 0)


def test_delta_matches_full_recalculation_over_random_history(service):
    """
    GIVEN a seeded random history of batches, single inserts and edits
    WHEN positions are maintained by delta and scoped recalculation
    THEN they always equal both a direct computation and a full rebuild.
    """
    rng = random.Random(20261018)
    codes = ["AXB", "INF", "ITC", "REL"]
    versions = defaultdict(int)
    records = []

    def next_request(trade_id):
        version = versions[trade_id]
        if version and rng.random() < 0.1:
            pass  # duplicate of the current latest version
        else:
            version += 1
        versions[trade_id] = version
        if version == 1:
            action = "INSERT"
        else:
            action = "CANCEL" if rng.random() < 0.1 else "UPDATE"
        return txn(
            trade_id, version, rng.choice(codes), rng.randint(0, 100),
            action=action, side=rng.choice(["BUY", "SELL"]),
        )

    def as_record(request):
        return {
            "trade_id": request.trade_id,
            "version": request.version,
            "security_code": request.security_code,
            "quantity": request.quantity,
            "action": request.action.value,
            "side": request.side.value,
        }

    for _ in range(25):
        roll = rng.random()
        if roll < 0.5:
            batch = [next_request(rng.randint(1, 8)) for _ in range(rng.randint(1, 5))]
            positions = service.process_bulk_transactions(batch)
            records.extend(as_record(r) for r in batch)
        elif roll < 0.8 or not records:
            request = next_request(rng.randint(1, 8))
            positions = service.process_transaction(request)
            records.append(as_record(request))
        else:
            stored = service.get_all_transactions()
            target = rng.choice([t for t in stored if t.is_latest_version])
            index = [t.transaction_id for t in stored].index(target.transaction_id)
            edit = txn(
                target.trade_id, target.version, rng.choice(codes), rng.randint(0, 100),
                action=target.action.value, side=rng.choice(["BUY", "SELL"]),
                transaction_id=target.transaction_id,
            )
            positions = service.process_transaction(edit)
            records[index] = as_record(edit)

        assert snapshot(positions) == expected_positions(records)

    assert snapshot(service.force_full_recalculation()) == expected_positions(records)
