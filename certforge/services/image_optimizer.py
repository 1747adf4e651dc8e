"""
Image Optimization Service
Downscale rendered pages and template images for previews
"""

from io import BytesIO
from typing import Tuple

from PIL import Image


class ImageOptimizer:
    """Resize + strip metadata; output is always PNG"""

    DEFAULT_MAX_WIDTH = 1200

    @staticmethod
    def resize_for_preview(image_bytes: bytes, max_width: int = DEFAULT_MAX_WIDTH) -> Tuple[bytes, str]:
        """
        Downscale an image to at most `max_width` pixels wide.

        Args:
            image_bytes: Original image bytes (any format Pillow reads)
            max_width: Width cap; smaller images keep their size

        Returns:
            Tuple of (png_bytes, content_type)
        """
        img = Image.open(BytesIO(image_bytes))

        has_transparency = img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info)

        # Resize if wider than the cap (maintain aspect ratio)
        width, height = img.size
        if width > max_width:
            new_height = max(1, int(height * (max_width / width)))
            img = img.resize((max_width, new_height), Image.Resampling.LANCZOS)

        # Save without copying EXIF
        output = BytesIO()
        if has_transparency:
            if img.mode != 'RGBA':
                img = img.convert('RGBA')
        elif img.mode != 'RGB':
            img = img.convert('RGB')
        img.save(output, format='PNG', optimize=True)
        return output.getvalue(), "image/png"

    @staticmethod
    def get_size_reduction(original_size: int, optimized_size: int) -> str:
        """Get human-readable size reduction"""
        if original_size == 0:
            return "0%"
        reduction = ((original_size - optimized_size) / original_size) * 100
        if reduction > 0:
            return f"-{reduction:.1f}%"
        elif reduction < 0:
            return f"+{abs(reduction):.1f}%"
        return "0%"
