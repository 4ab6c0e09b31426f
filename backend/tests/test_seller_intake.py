"""
Seller intake: STE code assignment, input sanitization and the /api/sellers endpoints.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

SUBMISSION = {
    "seller_name": "Jane Seller",
    "contact_name": "Jane Doe",
    "email": "jane@acmeimports.com",
    "primary_phone": "+1 555 0100",
    "business_name": "Acme Imports LLC",
    "address": "12 Market St",
    "city": "Trenton",
    "state": "NJ",
    "zipcode": "08608",
    "country": "USA",
    "store_type": "Walmart",
}


def mock_db(existing=41):
    db = MagicMock()
    db.walmart_sellers = MagicMock()
    db.walmart_sellers.count_documents = AsyncMock(return_value=existing)
    db.walmart_sellers.insert_one = AsyncMock()
    return db


@pytest.mark.asyncio
async def test_next_ste_code_counts_existing_sellers():
    from services.seller_service import next_ste_code

    with patch("services.seller_service.database.get_db", return_value=mock_db(existing=41)):
        assert await next_ste_code() == "9042"


@pytest.mark.asyncio
async def test_next_ste_code_falls_back_when_db_unavailable():
    from services.seller_service import next_ste_code

    with patch("services.seller_service.database.get_db", return_value=None):
        assert await next_ste_code() == "9001"


@pytest.mark.asyncio
async def test_submit_seller_stores_record_with_walmart_address():
    from services.seller_service import submit_seller
    from models import SellerSubmission, AuditAction

    db = mock_db(existing=0)
    with patch("services.seller_service.database.get_db", return_value=db), \
         patch("services.seller_service.create_audit_log", new_callable=AsyncMock) as audit:
        record = await submit_seller(SellerSubmission(**SUBMISSION), ip_address="10.0.0.1")

    assert record.ste_code == "9001"
    assert record.walmart_address.startswith("Jane Seller - WMT Returns - STE-9001\n")
    stored = db.walmart_sellers.insert_one.await_args.args[0]
    assert stored["seller_id"] == record.seller_id
    assert isinstance(stored["created_at"], str)
    assert audit.await_args.kwargs["action"] == AuditAction.SELLER_SUBMITTED
    assert audit.await_args.kwargs["ip_address"] == "10.0.0.1"


def test_submission_strips_markup_and_script_protocols():
    from models import SellerSubmission

    submission = SellerSubmission(**{**SUBMISSION, "comments": "<script>javascript:alert(1)</script>"})

    assert "<" not in submission.comments
    assert "javascript:" not in submission.comments


def test_submission_rejects_non_http_logo():
    from pydantic import ValidationError
    from models import SellerSubmission

    with pytest.raises(ValidationError):
        SellerSubmission(**{**SUBMISSION, "seller_logo": "ftp://logo.png"})


def test_next_ste_code_endpoint(client):
    with patch("services.seller_service.database.get_db", return_value=mock_db(existing=5)):
        response = client.get("/api/sellers/next-ste-code")

    assert response.status_code == 200
    assert response.json() == {"ste_code": "9006"}


def test_create_seller_endpoint(client):
    db = mock_db(existing=2)
    with patch("services.seller_service.database.get_db", return_value=db), \
         patch("services.seller_service.create_audit_log", new_callable=AsyncMock):
        response = client.post("/api/sellers", json=SUBMISSION)

    assert response.status_code == 201
    data = response.json()
    assert data["ste_code"] == "9003"
    assert data["email"] == "jane@acmeimports.com"
    db.walmart_sellers.insert_one.assert_awaited_once()


def test_create_seller_missing_field_is_422(client):
    body = {k: v for k, v in SUBMISSION.items() if k != "store_type"}

    response = client.post("/api/sellers", json=body)

    assert response.status_code == 422
    assert "request_id" in response.json()


def test_create_seller_storage_failure_is_500(client):
    db = mock_db()
    db.walmart_sellers.insert_one = AsyncMock(side_effect=RuntimeError("mongo down"))

    with patch("services.seller_service.database.get_db", return_value=db):
        response = client.post("/api/sellers", json=SUBMISSION)

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to save seller information"
