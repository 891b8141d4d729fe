import io
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a single-page invoice PDF with a few line items."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "INVOICE inv-001")
    c.drawString(72, 700, "Seller: Example Supplies Ltd")
    c.drawString(72, 680, "Buyer: Acme Corp")
    for row, (item, amount) in enumerate(
        [("Paper", "12.00"), ("Toner", "25.00"), ("Delivery", "5.00")]
    ):
        c.drawString(72, 650 - row * 20, item)
        c.drawString(400, 650 - row * 20, amount)
    c.drawString(72, 570, "Total: 42.00")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def files_root(tmp_path: Path) -> Path:
    root = tmp_path / "invoices"
    root.mkdir()
    return root


@pytest.fixture()
def targets_dir(tmp_path: Path) -> Path:
    root = tmp_path / "configs"
    root.mkdir()
    return root


@pytest.fixture()
def write_target(targets_dir: Path) -> Callable[..., Path]:
    """Write a ``config-<id>.json`` file and return its path."""

    def _write(target_id: str, **fields: Any) -> Path:
        path = targets_dir / f"config-{target_id}.json"
        path.write_text(json.dumps({"id": target_id, **fields}), encoding="utf-8")
        return path

    return _write
