# tests/unit/services/position_service/core/test_edit_validator.py
import pytest

from position_common.database_models import Transaction
from position_common.transaction_repository import TransactionRepository
from src.services.position_service.app.core.edit_validator import (
    EditAccepted,
    EditRejected,
    EditValidator,
)
from src.services.position_service.app.dtos.transaction_dto import TransactionRequest


@pytest.fixture
def repo(db_session) -> TransactionRepository:
    repo = TransactionRepository(db_session)
    repo.insert_all([
        Transaction(transaction_id=1, trade_id=1, version=1, security_code="REL", quantity=50, action="INSERT", side="BUY"),
        Transaction(transaction_id=4, trade_id=1, version=2, security_code="REL", quantity=60, action="UPDATE", side="BUY"),
        Transaction(transaction_id=2, trade_id=2, version=1, security_code="ITC", quantity=40, action="INSERT", side="SELL"),
    ])
    return repo


def request(**overrides) -> TransactionRequest:
    fields = dict(trade_id=1, version=3, security_code="REL", quantity=70, action="UPDATE", side="BUY")
    fields.update(overrides)
    return TransactionRequest(**fields)


def test_missing_transaction_id_is_a_new_record(repo):
    result = EditValidator(repo).validate(request())

    assert result == EditAccepted(is_edit=False)


def test_unknown_transaction_id_is_a_new_record(repo):
    result = EditValidator(repo).validate(request(transaction_id=99))

    assert isinstance(result, EditAccepted)
    assert result.is_edit is False


def test_edit_of_latest_version_is_accepted(repo):
    """
    GIVEN transaction 4 is the highest version of trade 1
    WHEN an edit of transaction 4 is validated
    THEN it is accepted and carries the stored security code and trade.
    """
    result = EditValidator(repo).validate(request(transaction_id=4, security_code="INF"))

    assert result == EditAccepted(is_edit=True, previous_security_code="REL", previous_trade_id=1)


def test_edit_of_superseded_version_is_rejected(repo):
    """
    GIVEN transaction 1 is version 1 of trade 1, which has a version 2
    WHEN an edit of transaction 1 is validated
    THEN it is rejected naming both versions.
    """
    result = EditValidator(repo).validate(request(transaction_id=1, version=1))

    assert isinstance(result, EditRejected)
    assert result.transaction_id == 1
    assert result.trade_id == 1
    assert result.attempted_version == 1
    assert result.latest_version == 2
    assert "Only the latest transaction version 2 can be edited" in result.reason


def test_validation_does_not_write(repo):
    before = [(t.id, t.security_code, t.quantity) for t in repo.find_all()]

    EditValidator(repo).validate(request(transaction_id=4, quantity=1))
    EditValidator(repo).validate(request(transaction_id=1))

    assert [(t.id, t.security_code, t.quantity) for t in repo.find_all()] == before
