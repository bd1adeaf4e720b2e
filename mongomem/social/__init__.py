"""
A small social network on top of mongomem: users, posts, comments,
the everyday queries, and the analytics pipelines.
"""

from .models import User, Post, PostMetrics, Comment, extract_hashtags
from .db import SocialDB
from . import queries, analytics
