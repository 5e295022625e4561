"""
Ingestion module: decodes an uploaded image or PDF into page rasters.
"""

import io
import logging
from pathlib import Path
from typing import List, Optional

import fitz  # PyMuPDF
from PIL import Image, ImageOps, UnidentifiedImageError

from assessment.raster import PageRaster

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif", ".tif", ".tiff"}


class UnreadableInputError(ValueError):
    """The uploaded file cannot be decoded into any page."""


def is_pdf(file_bytes: bytes, filename: Optional[str] = None) -> bool:
    if filename and Path(filename).suffix.lower() == ".pdf":
        return True
    return file_bytes[:5] == b"%PDF-"


def _scale_to_fit(image: Image.Image, max_dim: int) -> Image.Image:
    """Scale very large photos down so the longest side is max_dim."""
    width, height = image.size
    if max_dim <= 0 or (width <= max_dim and height <= max_dim):
        return image
    scale = max_dim / max(width, height)
    new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
    logger.info(f"Scaling {width}x{height} image to {new_size[0]}x{new_size[1]}")
    return image.resize(new_size, Image.Resampling.LANCZOS)


def load_image(file_bytes: bytes, max_dim: int = 2000) -> PageRaster:
    """
    Decode a single image file into a raster.

    Args:
        file_bytes: Raw image bytes (PNG, JPEG, ...)
        max_dim: Longest allowed side; larger images are scaled down

    Returns:
        PageRaster for page 0
    """
    try:
        image = Image.open(io.BytesIO(file_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise UnreadableInputError(f"Could not decode image: {e}") from e
    # Phone photos are stored rotated with an EXIF Orientation tag
    image = ImageOps.exif_transpose(image)
    return PageRaster.from_image(_scale_to_fit(image, max_dim), page_index=0)


def load_pdf(file_bytes: bytes, render_scale: float = 2.0) -> List[PageRaster]:
    """
    Render every page of a PDF to a raster.

    Args:
        file_bytes: Raw PDF bytes
        render_scale: Zoom relative to 72 DPI (2.0 gives ~144 DPI)

    Returns:
        One PageRaster per page, in page order
    """
    try:
        pdf_document = fitz.open(stream=file_bytes, filetype="pdf")
    except Exception as e:
        raise UnreadableInputError(f"Could not open PDF: {e}") from e

    try:
        if len(pdf_document) == 0:
            raise UnreadableInputError("PDF file has no pages")
        matrix = fitz.Matrix(render_scale, render_scale)
        pages: List[PageRaster] = []
        for idx, page in enumerate(pdf_document):
            pixmap = page.get_pixmap(matrix=matrix, colorspace=fitz.csRGB, alpha=False)
            image = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
            pages.append(PageRaster.from_image(image, page_index=idx))
        return pages
    finally:
        pdf_document.close()


def load_pages(
    file_bytes: bytes,
    filename: Optional[str] = None,
    max_dim: int = 2000,
    pdf_render_scale: float = 2.0,
) -> List[PageRaster]:
    """
    Decode an upload into per-page rasters.

    Raises:
        UnreadableInputError: empty file, undecodable image or PDF without pages
    """
    if not file_bytes:
        raise UnreadableInputError("Uploaded file is empty")

    if is_pdf(file_bytes, filename):
        pages = load_pdf(file_bytes, render_scale=pdf_render_scale)
    else:
        pages = [load_image(file_bytes, max_dim=max_dim)]

    logger.info(f"Loaded {len(pages)} page(s) from {filename or 'upload'}")
    return pages
