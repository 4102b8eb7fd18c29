import io
import re
import base64
import binascii
from pathlib import Path
from typing import List, Tuple, Optional, Sequence

import fitz
from PIL import Image, ImageOps
from loguru import logger

from khata.core.config import settings
from khata.utils import messages
from khata.utils.exceptions import (
    InputRejectedError,
    FileTooLargeError,
    InvalidFileTypeError,
    FileProcessingError
)


ImageBlob = Tuple[bytes, str]

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,", re.IGNORECASE)


class FileProcessor:

    ALLOWED_PDF_TYPES = {"pdf"}
    MAX_DIMENSION = 4096

    def __init__(self):
        self.max_file_size = settings.max_image_size_bytes
        self.max_images = settings.max_images
        self.allowed_types = set(settings.allowed_image_types_list)

    def validate_image_count(self, count: int) -> None:
        # runs before anything is decoded or sent anywhere
        if count == 0:
            raise InputRejectedError(messages.NO_IMAGES)
        if count > self.max_images:
            raise InputRejectedError(messages.too_many_images(self.max_images))

    def validate_file(self, filename: str, file_size: int, content_type: Optional[str] = None) -> str:
        """Check size and type, return the normalized extension."""
        if file_size == 0:
            raise FileProcessingError(messages.IMAGE_READ_FAILED)

        if file_size > self.max_file_size:
            raise FileTooLargeError(messages.FILE_TOO_LARGE.format(limit=settings.max_image_size_mb))

        extension = self._get_extension(filename)
        if not extension and content_type:
            extension = content_type.split("/")[-1].lower()
        if extension == "jpeg":
            extension = "jpg"
        if extension not in self.allowed_types:
            raise InvalidFileTypeError(
                f"{messages.INVALID_FILE_TYPE} (.{extension or '?'}; "
                f"{', '.join(sorted(self.allowed_types))})"
            )
        return extension

    def _get_extension(self, filename: Optional[str]) -> str:
        if not filename:
            return ""
        return Path(filename).suffix.lower().lstrip(".")

    def is_pdf(self, extension: str) -> bool:
        return extension in self.ALLOWED_PDF_TYPES

    async def prepare_uploads(self, uploads: Sequence[Tuple[bytes, str, Optional[str]]]) -> List[ImageBlob]:
        """
        Turn uploaded files (content, filename, content type) into model-ready
        image blobs. PDF pages count as separate images.
        """
        self.validate_image_count(len(uploads))

        images: List[ImageBlob] = []
        for content, filename, content_type in uploads:
            extension = self.validate_file(filename, len(content), content_type)
            images.extend(await self.process_file(content, extension))

        self.validate_image_count(len(images))
        return images

    async def prepare_data_urls(self, encoded_images: Sequence[str]) -> List[ImageBlob]:
        """Same as prepare_uploads for data URLs or bare base64 strings."""
        self.validate_image_count(len(encoded_images))

        images: List[ImageBlob] = []
        for index, encoded in enumerate(encoded_images, start=1):
            content, mime_type = self.decode_data_url(encoded)
            extension = self.validate_file(f"image{index}", len(content), mime_type)
            images.extend(await self.process_file(content, extension))

        self.validate_image_count(len(images))
        return images

    def decode_data_url(self, encoded: str) -> ImageBlob:
        encoded = (encoded or "").strip()
        match = _DATA_URL_RE.match(encoded)
        mime_type = match.group("mime").lower() if match else "image/jpeg"
        payload = encoded[match.end():] if match else encoded

        try:
            return base64.b64decode(payload, validate=True), mime_type
        except (binascii.Error, ValueError) as e:
            raise FileProcessingError(f"{messages.IMAGE_READ_FAILED}: {e}")

    async def process_file(self, file_content: bytes, extension: str) -> List[ImageBlob]:
        if self.is_pdf(extension):
            return await self._process_pdf(file_content)
        return await self._process_image(file_content, extension)

    async def _process_image(self, file_content: bytes, extension: str) -> List[ImageBlob]:
        try:
            image = Image.open(io.BytesIO(file_content))
            # phone photos carry their rotation in EXIF
            image = ImageOps.exif_transpose(image)

            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")

            if max(image.size) > self.MAX_DIMENSION:
                image = self._resize_image(image, self.MAX_DIMENSION)

            buffer = io.BytesIO()
            image_format = "JPEG" if extension in ("jpg", "jpeg") else "PNG"
            image.save(buffer, format=image_format, quality=95)

            return [(buffer.getvalue(), f"image/{image_format.lower()}")]

        except Exception as e:
            raise FileProcessingError(f"{messages.IMAGE_READ_FAILED}: {str(e)}")

    async def _process_pdf(self, file_content: bytes) -> List[ImageBlob]:
        try:
            images = []
            pdf_document = fitz.open(stream=file_content, filetype="pdf")

            for page_num in range(len(pdf_document)):
                page = pdf_document[page_num]
                # 300 DPI keeps handwriting legible
                zoom = 300 / 72
                pixmap = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
                images.append((pixmap.tobytes("png"), "image/png"))

            pdf_document.close()

            if not images:
                raise FileProcessingError("PDF contains no pages")

            logger.info(f"Rendered {len(images)} PDF page(s) to images")
            return images

        except FileProcessingError:
            raise
        except fitz.FileDataError as e:
            raise FileProcessingError(f"Invalid or corrupted PDF file: {str(e)}")
        except Exception as e:
            raise FileProcessingError(f"Failed to process PDF: {str(e)}")

    def _resize_image(self, image: Image.Image, max_dimension: int) -> Image.Image:
        width, height = image.size

        if width > height:
            new_width = max_dimension
            new_height = int(height * (max_dimension / width))
        else:
            new_height = max_dimension
            new_width = int(width * (max_dimension / height))

        return image.resize((new_width, new_height), Image.Resampling.LANCZOS)


file_processor = FileProcessor()
