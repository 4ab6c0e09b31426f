"""Tests for signature rendering outcomes."""
import base64
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from reportlab.lib.utils import ImageReader

from services.errors import AssetLoadError, ImageDecodeError
from services.signature_embedder import (
    APPLIED_MARKER,
    BLANK_AUTHORIZED_LINE,
    BLANK_SIGNATURE_LINE,
    SIGNATURE_HEIGHT,
    SIGNATURE_WIDTH,
    SignatureBlock,
    SignatureEmbedder,
    SignatureOutcome,
    SignatureSlot,
    decode_signature_image,
    format_signature_date,
    load_counter_party_image,
)

SIGNED_ON = datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc)


def block(slot, fixed_image=None):
    return SignatureBlock(
        slot=slot,
        x=50,
        y=100,
        label="Client:",
        signer_name="Jane Seller",
        signed_on=SIGNED_ON,
        fixed_image=fixed_image,
    )


def drawn_text(canvas):
    return [c.args[2] for c in canvas.drawString.call_args_list]


def test_submitter_with_valid_image_draws_image_at_fixed_size(signature_png):
    canvas = MagicMock()

    outcome = SignatureEmbedder().render(canvas, block(SignatureSlot.SUBMITTER), signature_png)

    assert outcome == SignatureOutcome.IMAGE
    canvas.drawImage.assert_called_once()
    kwargs = canvas.drawImage.call_args.kwargs
    assert kwargs["width"] == SIGNATURE_WIDTH
    assert kwargs["height"] == SIGNATURE_HEIGHT
    assert APPLIED_MARKER not in drawn_text(canvas)


def test_submitter_accepts_data_url(signature_data_url):
    canvas = MagicMock()

    outcome = SignatureEmbedder().render(canvas, block(SignatureSlot.SUBMITTER), signature_data_url)

    assert outcome == SignatureOutcome.IMAGE


def test_corrupt_payload_falls_back_to_marker_text():
    canvas = MagicMock()
    garbage = base64.b64encode(b"definitely not an image").decode()

    outcome = SignatureEmbedder().render(canvas, block(SignatureSlot.SUBMITTER), garbage)

    assert outcome == SignatureOutcome.TEXT_FALLBACK
    assert APPLIED_MARKER in drawn_text(canvas)
    canvas.drawImage.assert_not_called()


def test_missing_payload_draws_blank_line():
    canvas = MagicMock()

    outcome = SignatureEmbedder().render(canvas, block(SignatureSlot.SUBMITTER), None)

    assert outcome == SignatureOutcome.BLANK_LINE
    assert BLANK_SIGNATURE_LINE in drawn_text(canvas)


def test_counter_party_ignores_provided_image(signature_png):
    canvas = MagicMock()
    fixed = load_counter_party_image()

    outcome = SignatureEmbedder().render(
        canvas, block(SignatureSlot.COUNTER_PARTY, fixed_image=fixed), signature_png
    )

    assert outcome == SignatureOutcome.STATIC_IMAGE
    assert canvas.drawImage.call_args.args[0] is fixed


def test_counter_party_without_asset_draws_authorized_line():
    canvas = MagicMock()

    outcome = SignatureEmbedder().render(canvas, block(SignatureSlot.COUNTER_PARTY), None)

    assert outcome == SignatureOutcome.AUTHORIZED_LINE
    assert BLANK_AUTHORIZED_LINE in drawn_text(canvas)


def test_every_block_gets_a_date_stamp(signature_png):
    for slot, payload in [
        (SignatureSlot.SUBMITTER, signature_png),
        (SignatureSlot.SUBMITTER, None),
        (SignatureSlot.COUNTER_PARTY, None),
    ]:
        canvas = MagicMock()
        SignatureEmbedder().render(canvas, block(slot), payload)
        assert "Date: October 19, 2026" in drawn_text(canvas)


def test_format_signature_date():
    assert format_signature_date(datetime(2026, 3, 5)) == "March 5, 2026"


def test_decode_rejects_non_base64():
    with pytest.raises(ImageDecodeError):
        decode_signature_image("%%%not-base64%%%")


def test_decode_rejects_empty_payload():
    with pytest.raises(ImageDecodeError):
        decode_signature_image("data:image/png;base64,")


def test_decode_returns_image_reader(signature_png):
    reader = decode_signature_image(signature_png)

    assert isinstance(reader, ImageReader)
    assert reader.getSize() == (120, 40)


def test_missing_asset_raises_asset_load_error(tmp_path):
    with pytest.raises(AssetLoadError):
        load_counter_party_image(str(tmp_path / "nope.png"))


def test_corrupt_asset_raises_asset_load_error(tmp_path):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"not a png")

    with pytest.raises(AssetLoadError):
        SignatureEmbedder(asset_path=str(bad)).load_counter_party_image()
