from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import Forbidden, NotFound, PersistenceError, ValidationError
from app.db import models
from app.pricing.analysis import fallback_analysis
from app.pricing.openai_client import OpenAIError
from app.quotations import service


@pytest.fixture()
def tenant_admin(make_tenant, make_user):
    tenant = make_tenant(name="Campinas")
    return tenant, make_user(tenant, role=models.ROLE_ADMIN)


def _notifications(db, quotation, notification_type=None):
    query = db.query(models.Notification).filter(models.Notification.quotation_id == quotation.id)
    if notification_type:
        query = query.filter(models.Notification.type == notification_type)
    return query.all()


def test_create_survives_every_external_failure(db_session, tenant_admin):
    tenant, admin = tenant_admin
    with patch("app.pricing.analysis.request_chat_completion", side_effect=OpenAIError("fora")), patch(
        "app.pricing.report.request_chat_completion", side_effect=OpenAIError("fora")
    ), patch("app.quotations.service.dispatch", return_value=False):
        quotation = service.create_quotation(
            db_session, admin, {"product": "Papel A4", "quantity": 1000, "unit_price": "12.50"}
        )

    assert quotation.status == models.QUOTATION_PENDING
    assert quotation.tenant_id == tenant.id
    assert quotation.user_id == admin.id
    assert quotation.total_price == Decimal("12500.00")
    assert quotation.analysis_confidence == Decimal("0.30")
    assert quotation.price_range_min == Decimal("10.00")
    assert quotation.price_range_max == Decimal("15.00")
    assert quotation.recommendations and len(quotation.recommendations) == 3
    assert "RELATORIO DE COTACAO" in quotation.price_report
    assert "Campinas" in quotation.price_report
    assert quotation.webhook_sent is False

    notifications = _notifications(db_session, quotation)
    assert len(notifications) == 1
    assert notifications[0].type == models.NOTIFICATION_NEW_QUOTATION
    assert notifications[0].status == models.NOTIFICATION_FAILED
    assert notifications[0].recipient == admin.email
    assert notifications[0].tenant_id == tenant.id


def test_create_marks_webhook_sent_on_delivery(db_session, tenant_admin):
    _, admin = tenant_admin
    with patch("app.quotations.service.analyze_prices", return_value=fallback_analysis(Decimal("2.00"))), patch(
        "app.quotations.service.generate_quotation_report", return_value="Relatorio"
    ), patch("app.quotations.service.dispatch", return_value=True) as mock_dispatch:
        quotation = service.create_quotation(db_session, admin, {"product": "Caneta", "quantity": 3, "unit_price": 2})

    assert quotation.webhook_sent is True
    assert quotation.price_report == "Relatorio"
    payload = mock_dispatch.call_args[0][0]
    assert payload["evento"] == "nova_cotacao"
    assert payload["cotacao_id"] == quotation.id
    notifications = _notifications(db_session, quotation)
    assert [n.status for n in notifications] == [models.NOTIFICATION_SENT]


def test_total_price_rounds_half_up():
    assert service.compute_total_price(3, Decimal("0.35")) == Decimal("1.05")
    assert service.compute_total_price(1000, Decimal("12.50")) == Decimal("12500.00")


@pytest.mark.parametrize(
    "data, field",
    [
        ({"product": "", "quantity": 1, "unit_price": 1}, "product"),
        ({"product": "x" * 501, "quantity": 1, "unit_price": 1}, "product"),
        ({"product": "Papel", "quantity": 0, "unit_price": 1}, "quantity"),
        ({"product": "Papel", "quantity": 1.5, "unit_price": 1}, "quantity"),
        ({"product": "Papel", "quantity": 1, "unit_price": 0}, "unit_price"),
        ({"product": "Papel", "quantity": 1, "unit_price": "abc"}, "unit_price"),
        ({"product": "Papel", "quantity": 1, "unit_price": "100000000"}, "unit_price"),
    ],
)
def test_invalid_input_is_rejected_before_any_side_effect(db_session, tenant_admin, data, field):
    _, admin = tenant_admin
    with patch("app.quotations.service.analyze_prices") as mock_analysis, patch(
        "app.quotations.service.dispatch"
    ) as mock_dispatch:
        with pytest.raises(ValidationError) as excinfo:
            service.create_quotation(db_session, admin, data)

    assert field in [error["field"] for error in excinfo.value.errors]
    mock_analysis.assert_not_called()
    mock_dispatch.assert_not_called()
    assert db_session.query(models.Quotation).count() == 0
    assert db_session.query(models.Notification).count() == 0


def test_root_cannot_create_quotation(db_session, make_user):
    root = make_user(None, role=models.ROLE_ROOT)
    with pytest.raises(Forbidden):
        service.create_quotation(db_session, root, {"product": "Papel", "quantity": 1, "unit_price": 1})


def test_status_change_notifies_once(db_session, tenant_admin):
    _, admin = tenant_admin
    with patch("app.quotations.service.dispatch", return_value=True) as mock_dispatch:
        quotation = service.create_quotation(db_session, admin, {"product": "Papel", "quantity": 2, "unit_price": 5})
        service.update_quotation(db_session, admin, quotation.id, {"status": models.QUOTATION_APPROVED})
        service.update_quotation(db_session, admin, quotation.id, {"status": models.QUOTATION_APPROVED})

    assert quotation.status == models.QUOTATION_APPROVED
    assert mock_dispatch.call_count == 2
    assert mock_dispatch.call_args[0][0]["evento"] == "status_atualizado"
    status_notifications = _notifications(db_session, quotation, models.NOTIFICATION_STATUS_UPDATED)
    assert len(status_notifications) == 1


def test_status_persists_even_when_webhook_fails(db_session, tenant_admin):
    _, admin = tenant_admin
    with patch("app.quotations.service.dispatch", return_value=False):
        quotation = service.create_quotation(db_session, admin, {"product": "Papel", "quantity": 2, "unit_price": 5})
        service.update_quotation(db_session, admin, quotation.id, {"status": models.QUOTATION_REJECTED})

    db_session.expire_all()
    stored = db_session.query(models.Quotation).filter(models.Quotation.id == quotation.id).one()
    assert stored.status == models.QUOTATION_REJECTED
    status_notifications = _notifications(db_session, quotation, models.NOTIFICATION_STATUS_UPDATED)
    assert [n.status for n in status_notifications] == [models.NOTIFICATION_FAILED]


def test_invalid_status_is_rejected(db_session, tenant_admin):
    _, admin = tenant_admin
    quotation = service.create_quotation(db_session, admin, {"product": "Papel", "quantity": 1, "unit_price": 1})
    with pytest.raises(ValidationError):
        service.update_quotation(db_session, admin, quotation.id, {"status": "archived"})


def test_other_tenant_sees_not_found(db_session, tenant_admin, make_tenant, make_user):
    _, admin = tenant_admin
    outsider = make_user(make_tenant(name="Sorocaba"), role=models.ROLE_ADMIN)
    quotation = service.create_quotation(db_session, admin, {"product": "Papel", "quantity": 1, "unit_price": 1})

    with pytest.raises(NotFound):
        service.get_quotation(db_session, outsider, quotation.id)
    with pytest.raises(NotFound):
        service.update_quotation(db_session, outsider, quotation.id, {"status": models.QUOTATION_APPROVED})
    with pytest.raises(NotFound):
        service.delete_quotation(db_session, outsider, quotation.id)
    assert service.list_quotations(db_session, outsider) == []


def test_list_filters_by_status_and_root_sees_all(db_session, tenant_admin, make_tenant, make_user):
    _, admin = tenant_admin
    other_admin = make_user(make_tenant(name="Sorocaba"), role=models.ROLE_ADMIN)
    root = make_user(None, role=models.ROLE_ROOT)
    first = service.create_quotation(db_session, admin, {"product": "Papel", "quantity": 1, "unit_price": 1})
    service.create_quotation(db_session, other_admin, {"product": "Toner", "quantity": 1, "unit_price": 1})
    service.update_quotation(db_session, admin, first.id, {"status": models.QUOTATION_APPROVED})

    assert [q.id for q in service.list_quotations(db_session, admin, status="approved")] == [first.id]
    assert len(service.list_quotations(db_session, root)) == 2


def test_delete_cascades_notifications(db_session, tenant_admin):
    _, admin = tenant_admin
    quotation = service.create_quotation(db_session, admin, {"product": "Papel", "quantity": 1, "unit_price": 1})
    service.delete_quotation(db_session, admin, quotation.id)

    assert db_session.query(models.Quotation).count() == 0
    assert db_session.query(models.Notification).count() == 0


def test_persistence_failure_is_reported(db_session, tenant_admin):
    _, admin = tenant_admin
    with patch.object(db_session, "commit", side_effect=SQLAlchemyError("disco cheio")):
        with pytest.raises(PersistenceError):
            service.create_quotation(db_session, admin, {"product": "Papel", "quantity": 1, "unit_price": 1})


def test_oversized_provider_figures_are_capped(db_session, tenant_admin):
    _, admin = tenant_admin
    response = '{"averagePrice": 1e30, "priceRange": {"min": 1, "max": 1e40}, "confidence": 0.9}'
    with patch("app.pricing.analysis.request_chat_completion", return_value=(response, {})):
        quotation = service.create_quotation(
            db_session, admin, {"product": "Papel A4", "quantity": 1000, "unit_price": "12.50"}
        )

    assert quotation.status == models.QUOTATION_PENDING
    assert quotation.average_market_price == service.MAX_AMOUNT
    assert quotation.price_range_min == Decimal("1.00")
    assert quotation.price_range_max == service.MAX_AMOUNT
    assert db_session.query(models.Quotation).count() == 1
