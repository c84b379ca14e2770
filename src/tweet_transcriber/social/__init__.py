"""
Twitter API access: post lookup, video variant selection and download.
"""

from .cache import PostCache
from .twitter_client import TwitterClient, VideoReference, extract_post_id, select_best_variant

__all__ = [
    "PostCache",
    "TwitterClient",
    "VideoReference",
    "extract_post_id",
    "select_best_variant",
]
