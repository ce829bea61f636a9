"""
Media Module - Uploaded images referenced by posts.
"""

from bulletin.modules.media.images import ImageAssociator, extract_image_urls

__all__ = ["ImageAssociator", "extract_image_urls"]
