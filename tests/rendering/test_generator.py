"""Tests for CertificateGenerator: both outputs, shared scaling and cleanup."""

import io
import os
from unittest.mock import patch

import fitz
import pytest
from PIL import Image

from certgen.rendering import raster, vector
from certgen.rendering.errors import RenderError, TemplateDecodeError
from certgen.rendering.generator import CertificateGenerator

PLACEHOLDERS = [
    {"type": "name", "x": 100, "y": 50, "font_size": 24, "font_family": "Arial"},
    {"type": "id", "x": 400, "y": 300, "font_size": 16, "font_family": "Georgia", "text_align": "center"},
]
VALUES = {"name": "Jane Doe", "id": "CERT-2025-001"}


def _generate(generator, template_path, **overrides):
    kwargs = {
        "certificate_id": "CERT-2025-001",
        "template_path": template_path,
        "mime_type": "image/png",
        "width": 1000,
        "height": 600,
        "placeholders": PLACEHOLDERS,
        "values": VALUES,
        "container": {"width": 800, "height": 480},
    }
    kwargs.update(overrides)
    return generator.generate(**kwargs)


@pytest.fixture
def pdf_template(tmp_path) -> str:
    path = tmp_path / "background.pdf"
    with fitz.open() as doc:
        doc.new_page(width=500, height=300)
        doc.save(str(path))
    return str(path)


@pytest.mark.unit
class TestGenerate:
    def test_writes_pdf_and_png(self, generator, template_png):
        files = _generate(generator, template_png)

        assert set(files) == {"pdf", "png"}
        for fmt, generated in files.items():
            assert generated.filename == f"CERT-2025-001.{fmt}"
            assert os.path.getsize(generated.path) == generated.size > 0
        assert Image.open(files["png"].path).size == (1000, 600)
        with open(files["pdf"].path, "rb") as f:
            assert f.read(4) == b"%PDF"

    def test_both_outputs_use_the_same_scaled_geometry(self, generator, template_png):
        with (
            patch("certgen.rendering.generator.render_png", wraps=raster.render_png) as png_spy,
            patch("certgen.rendering.generator.render_pdf", wraps=vector.render_pdf) as pdf_spy,
        ):
            _generate(generator, template_png)

        png_placeholders = png_spy.call_args.args[1]
        pdf_placeholders = pdf_spy.call_args.args[3]
        assert png_placeholders == pdf_placeholders
        name = png_placeholders[0]
        assert (name.x, name.y, name.font_size) == (pytest.approx(125), pytest.approx(62.5), pytest.approx(30))

    def test_missing_container_uses_default_width(self, storage_dirs, template_png):
        generator = CertificateGenerator(output_dir=storage_dirs["generated"], default_container_width=500)
        with patch("certgen.rendering.generator.render_png", wraps=raster.render_png) as png_spy:
            _generate(generator, template_png, container=None)

        name = png_spy.call_args.args[1][0]
        assert name.x == pytest.approx(200)
        assert name.y == pytest.approx(100)

    def test_pdf_template(self, generator, pdf_template):
        files = _generate(generator, pdf_template, mime_type="application/pdf", width=500, height=300)

        assert Image.open(files["png"].path).size == (500, 300)
        assert files["pdf"].size > 0

    def test_missing_template_raises_and_leaves_nothing(self, generator, tmp_path):
        with pytest.raises(TemplateDecodeError):
            _generate(generator, str(tmp_path / "missing.png"))

        assert not generator.file_info("CERT-2025-001", "png").exists
        assert not generator.file_info("CERT-2025-001", "pdf").exists

    def test_corrupt_template_raises(self, generator, tmp_path):
        broken = tmp_path / "broken.png"
        broken.write_bytes(b"definitely not an image")

        with pytest.raises(RenderError):
            _generate(generator, str(broken))

    def test_pdf_failure_removes_the_png(self, generator, template_png):
        with patch("certgen.rendering.generator.render_pdf", side_effect=RenderError("boom")):
            with pytest.raises(RenderError):
                _generate(generator, template_png)

        assert not generator.file_info("CERT-2025-001", "png").exists

    def test_non_positive_dimensions_raise_render_error(self, generator, template_png):
        with pytest.raises(RenderError):
            _generate(generator, template_png, width=0)

    def test_unexpected_error_is_wrapped_and_cleans_up(self, generator, template_png):
        with patch("certgen.rendering.generator.render_pdf", side_effect=RuntimeError("out of memory")):
            with pytest.raises(RenderError, match="out of memory"):
                _generate(generator, template_png)

        assert not generator.file_info("CERT-2025-001", "png").exists

    def test_oversized_image_is_a_decode_error(self, generator, template_png):
        with patch("PIL.Image.MAX_IMAGE_PIXELS", 1000):
            with pytest.raises(TemplateDecodeError):
                _generate(generator, template_png)

        assert not generator.file_info("CERT-2025-001", "png").exists


@pytest.mark.unit
class TestFiles:
    def test_file_path_rejects_unknown_format(self, generator):
        with pytest.raises(ValueError):
            generator.file_path("CERT-2025-001", "svg")

    def test_file_info_for_missing_file(self, generator):
        info = generator.file_info("CERT-2025-404", "pdf")
        assert info.exists is False
        assert info.size == 0
        assert info.filename == "CERT-2025-404.pdf"

    def test_delete_files_counts_removed(self, generator, template_png):
        _generate(generator, template_png)

        assert generator.delete_files("CERT-2025-001") == 2
        assert generator.delete_files("CERT-2025-001") == 0

    def test_png_is_readable(self, generator, template_png):
        files = _generate(generator, template_png)
        with open(files["png"].path, "rb") as f:
            img = Image.open(io.BytesIO(f.read()))
            assert img.format == "PNG"


def _ink_origin(img: Image.Image) -> tuple[int, int]:
    """Top-left corner of the dark pixels on a light background."""
    mask = img.convert("L").point(lambda v: 255 if v < 128 else 0)
    bbox = mask.getbbox()
    assert bbox is not None
    return bbox[0], bbox[1]


@pytest.mark.unit
class TestOutputAlignment:
    def test_text_lands_in_the_same_place_in_png_and_pdf(self, generator, template_png):
        placeholder = {"type": "name", "x": 100, "y": 80, "font_size": 100, "font_family": "Arial"}
        files = _generate(
            generator,
            template_png,
            placeholders=[placeholder],
            values={"name": "HELLO"},
            container={"width": 1000, "height": 600},
        )

        png_x, png_y = _ink_origin(Image.open(files["png"].path))
        with fitz.open(files["pdf"].path) as doc:
            pix = doc[0].get_pixmap(alpha=False)
            pdf_img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
        pdf_x, pdf_y = _ink_origin(pdf_img)

        assert pdf_img.size == (1000, 600)
        assert abs(png_x - pdf_x) <= 8
        assert abs(png_y - pdf_y) <= 6
        # Top of the line box sits at y, so ink starts just below it
        assert 80 <= png_y < 80 + 100 // 3
