"""
Everyday queries on the social network.

Every function takes a `SocialDB`, and returns a list of documents.
"""

from datetime import datetime, timedelta
from typing import Iterable, List

from .db import SocialDB
from .models import utcnow


def recent_posts_with_hashtag(db: SocialDB, hashtag: str, days: int = 7, limit: int = 10,
                              now: datetime = None) -> List[dict]:
    """ Posts with a hashtag from the last few days, newest first """
    since = (now or utcnow()) - timedelta(days=days)
    return db.posts.find({
        'hashtags': hashtag,
        'created_at': {'$gte': since},
    }, sort=[('created_at', -1)], limit=limit).to_list()


def users_by_username(db: SocialDB, pattern: str = r'^user(10|[5-9])$') -> List[dict]:
    """ Users whose username matches a regular expression. Default: user5 .. user10 """
    return db.users.find({'username': {'$regex': pattern}},
                         projection={'username': 1, 'email': 1}).to_list()


def popular_posts(db: SocialDB, min_likes: int = 5, min_comments: int = 3, limit: int = 10) -> List[dict]:
    """ Posts that have enough likes, or enough comments """
    return db.posts.find({
        '$or': [
            {'metrics.likes': {'$gte': min_likes}},
            {'metrics.comments': {'$gte': min_comments}},
        ]
    }, projection={'text': 1, 'metrics': 1}, limit=limit).to_list()


def posts_with_any_hashtag(db: SocialDB, hashtags: Iterable[str] = ('#spark', '#kafka'),
                           limit: int = 10) -> List[dict]:
    """ Posts that have at least one of the hashtags """
    return db.posts.find({'hashtags': {'$in': list(hashtags)}},
                         projection={'text': 1, 'hashtags': 1}, limit=limit).to_list()


def posts_without_metrics(db: SocialDB, limit: int = 5) -> List[dict]:
    """ Posts that have no `metrics` at all: a data quality check """
    return db.posts.find({'metrics': {'$exists': False}}, limit=limit).to_list()


def posts_with_hashtag_count(db: SocialDB, count: int = 3, limit: int = 10) -> List[dict]:
    """ Posts with exactly `count` hashtags """
    return db.posts.find({'hashtags': {'$size': count}},
                         projection={'hashtags': 1, 'text': 1}, limit=limit).to_list()


def comments_of_posts(db: SocialDB, post_ids: Iterable = None, limit: int = 5) -> List[dict]:
    """ Comments on a set of posts

    :param post_ids: Post ids. Default: the first two posts
    """
    if post_ids is None:
        post_ids = [post['_id'] for post in db.posts.find(projection=['_id'], limit=2)]
    return db.comments.find({'post_id': {'$in': list(post_ids)}}, limit=limit).to_list()
