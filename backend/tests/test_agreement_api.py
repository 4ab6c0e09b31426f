"""
POST /api/agreement/generate
- Unsigned: PDF download with attachment filename
- Signed: JSON envelope with a data URL
- Invalid STE code: 422 with request_id
- Signed without provider signature asset: 500
"""
import base64
from unittest.mock import AsyncMock, patch

from services.agreement_generator import agreement_builder
from services.signature_embedder import SignatureEmbedder

FORM = {
    "seller_name": "Jane Seller",
    "business_name": "Acme Imports LLC",
    "email": "jane@acmeimports.com",
    "phone": "+1 555 0100",
    "ste_code": "9042",
    "address": "12 Market St",
    "city": "Trenton",
    "state": "NJ",
    "zipcode": "08608",
    "country": "USA",
}


def test_unsigned_request_returns_pdf_download(client):
    with patch("routes.agreement.create_audit_log", new_callable=AsyncMock) as audit:
        response = client.post("/api/agreement/generate", json=FORM)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="3PL-Agreement-Jane Seller-STE-9042.pdf"'
    assert response.content.startswith(b"%PDF")
    assert audit.await_args.kwargs["metadata"]["signed"] is False


def test_signed_request_returns_data_url_envelope(client, signature_png):
    with patch("routes.agreement.create_audit_log", new_callable=AsyncMock):
        response = client.post("/api/agreement/generate", json={**FORM, "signature_data": signature_png})

    assert response.status_code == 200
    data = response.json()
    assert data["filename"] == "3PL-Agreement-Jane Seller-STE-9042.pdf"
    assert data["pdf_base64"].startswith("data:application/pdf;base64,")
    assert base64.b64decode(data["pdf_base64"].split(",", 1)[1]).startswith(b"%PDF")


def test_non_ascii_filename_gets_utf8_variant(client):
    with patch("routes.agreement.create_audit_log", new_callable=AsyncMock):
        response = client.post("/api/agreement/generate", json={**FORM, "seller_name": "Zoë Traders"})

    disposition = response.headers["content-disposition"]
    assert 'filename="3PL-Agreement-Zo Traders-STE-9042.pdf"' in disposition
    assert "filename*=UTF-8''3PL-Agreement-Zo%C3%AB%20Traders-STE-9042.pdf" in disposition


def test_invalid_ste_code_is_422_with_request_id(client):
    response = client.post("/api/agreement/generate", json={**FORM, "ste_code": "90 42; drop"})

    assert response.status_code == 422
    body = response.json()
    assert body["request_id"]
    assert any(error["loc"][-1] == "ste_code" for error in body["detail"])


def test_empty_body_renders_placeholder_agreement(client):
    with patch("routes.agreement.create_audit_log", new_callable=AsyncMock):
        response = client.post("/api/agreement/generate", json={})

    assert response.status_code == 200
    assert 'filename="3PL-Agreement-Seller-STE-XXXX.pdf"' in response.headers["content-disposition"]


def test_signed_request_without_provider_asset_is_500(client, signature_png, tmp_path, monkeypatch):
    monkeypatch.setattr(agreement_builder, "embedder", SignatureEmbedder(asset_path=str(tmp_path / "missing.png")))

    with patch("routes.agreement.create_audit_log", new_callable=AsyncMock) as audit:
        response = client.post("/api/agreement/generate", json={**FORM, "signature_data": signature_png})

    assert response.status_code == 500
    assert "Provider signature is unavailable" in response.json()["detail"]
    assert audit.await_args.kwargs["metadata"]["error_type"] == "AssetLoadError"


def test_health_and_root_endpoints(client):
    assert client.get("/api/health").json()["status"] == "healthy"
    assert client.get("/api").json()["status"] == "operational"
