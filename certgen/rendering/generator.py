"""Certificate file generation: one PNG and one PDF per certificate ID.

Both outputs are produced from the same scaled placeholder list, so the two
renderers never compute their own scale factors.
"""

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from certgen.config import settings
from certgen.rendering.background import is_pdf, load_background
from certgen.rendering.errors import RenderError
from certgen.rendering.raster import render_png
from certgen.rendering.scaling import compute_scale, scale_placeholders
from certgen.rendering.vector import render_pdf

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("pdf", "png")

# PDF templates are rasterized above page resolution before being placed in
# the PDF output so the background stays sharp when zoomed.
_PDF_BACKGROUND_OVERSAMPLE = 2.0


@dataclass(frozen=True)
class GeneratedFile:
    filename: str
    path: str
    size: int


@dataclass(frozen=True)
class FileInfo:
    path: str
    filename: str
    size: int
    exists: bool


class CertificateGenerator:
    def __init__(
        self,
        output_dir: str | None = None,
        font_dirs: Sequence[str] | None = None,
        default_container_width: int | None = None,
    ):
        self.output_dir = output_dir or settings.generated_dir
        self.font_dirs = tuple(font_dirs if font_dirs is not None else settings.font_dirs)
        self.default_container_width = default_container_width or settings.default_container_width

    def file_path(self, certificate_id: str, fmt: str) -> str:
        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported format: {fmt}")
        return os.path.join(self.output_dir, f"{certificate_id}.{fmt}")

    def _write(self, certificate_id: str, fmt: str, content: bytes) -> GeneratedFile:
        path = self.file_path(certificate_id, fmt)
        with open(path, "wb") as f:
            f.write(content)
        return GeneratedFile(filename=os.path.basename(path), path=path, size=len(content))

    def generate(
        self,
        *,
        certificate_id: str,
        template_path: str,
        mime_type: str | None,
        width: int,
        height: int,
        placeholders: Sequence[Mapping],
        values: Mapping[str, str | None],
        container: Mapping | None = None,
    ) -> dict[str, GeneratedFile]:
        """Render both formats and write them to the output directory.

        Raises RenderError on any failure; files written before the failure
        are removed again.
        """
        os.makedirs(self.output_dir, exist_ok=True)
        try:
            factors = compute_scale(width, height, container, self.default_container_width)
        except ValueError as exc:
            raise RenderError(str(exc)) from exc
        scaled = scale_placeholders(placeholders, factors)
        logger.info(
            "Generating %s: template %sx%s, container %.0fx%.0f, scale %.4f/%.4f",
            certificate_id, width, height,
            factors.container_width, factors.container_height, factors.scale_x, factors.scale_y,
        )

        try:
            background = load_background(template_path, mime_type, width, height)
            files = {"png": self._write(
                certificate_id, "png", render_png(background, scaled, values, self.font_dirs)
            )}
            if is_pdf(template_path, mime_type):
                background = load_background(
                    template_path, mime_type, width, height, scale=_PDF_BACKGROUND_OVERSAMPLE
                )
            files["pdf"] = self._write(
                certificate_id, "pdf", render_pdf(background, width, height, scaled, values)
            )
        except RenderError:
            self.delete_files(certificate_id)
            raise
        except Exception as exc:
            self.delete_files(certificate_id)
            raise RenderError(f"Certificate rendering failed: {exc}") from exc
        return files

    def file_info(self, certificate_id: str, fmt: str) -> FileInfo:
        path = self.file_path(certificate_id, fmt)
        exists = os.path.isfile(path)
        return FileInfo(
            path=path,
            filename=os.path.basename(path),
            size=os.path.getsize(path) if exists else 0,
            exists=exists,
        )

    def delete_files(self, certificate_id: str) -> int:
        """Remove both outputs of a certificate; returns how many files existed."""
        deleted = 0
        for fmt in SUPPORTED_FORMATS:
            path = self.file_path(certificate_id, fmt)
            try:
                os.remove(path)
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Could not delete %s: %s", path, exc)
        return deleted


def get_generator() -> CertificateGenerator:
    return CertificateGenerator()
