"""
Social analytics: aggregation pipelines over posts.

* `top_hashtags()`: the most used hashtags
* `engagement_ranking()`: posts with the most likes + comments
* `influencers()`: users who got the most likes, with their average likes per post
* `activity_by_hour()`: the number of posts per hour of the day (UTC)
"""

from typing import List

from .db import SocialDB


def top_hashtags(db: SocialDB, limit: int = 10) -> List[dict]:
    """ Hashtags by the number of uses

    :return: [{'_id': hashtag, 'uses': int}]
    """
    return db.posts.aggregate([
        {'$unwind': '$hashtags'},
        {'$group': {'_id': '$hashtags', 'uses': {'$sum': 1}}},
        {'$sort': {'uses': -1}},
        {'$limit': limit},
    ])


def engagement_ranking(db: SocialDB, limit: int = 10) -> List[dict]:
    """ Posts by engagement: likes + comments. Newer posts go first when tied.

        Posts without metrics are not ranked: their engagement is unknown, not zero.

    :return: [{'_id', 'text', 'created_at', 'engagement': int}]
    """
    return db.posts.aggregate([
        {'$match': {'metrics': {'$exists': True}}},
        {'$project': {
            'text': 1,
            'created_at': 1,
            'engagement': {'$add': ['$metrics.likes', '$metrics.comments']},
        }},
        {'$sort': {'engagement': -1, 'created_at': -1}},
        {'$limit': limit},
    ])


def influencers(db: SocialDB, limit: int = 10) -> List[dict]:
    """ Users by the total number of likes on their posts

    :return: [{'username', 'posts': int, 'total_likes': int, 'avg_likes': float}]
    """
    return db.posts.aggregate([
        {'$group': {
            '_id': '$user_id',
            'total_likes': {'$sum': '$metrics.likes'},
            'posts': {'$sum': 1},
        }},
        {'$lookup': {'from': db.users, 'localField': '_id', 'foreignField': '_id', 'as': 'u'}},
        {'$unwind': '$u'},
        {'$project': {
            '_id': 0,
            'username': '$u.username',
            'posts': 1,
            'total_likes': 1,
            'avg_likes': {
                '$cond': [{'$gt': ['$posts', 0]}, {'$divide': ['$total_likes', '$posts']}, 0],
            },
        }},
        {'$sort': {'total_likes': -1}},
        {'$limit': limit},
    ])


def activity_by_hour(db: SocialDB) -> List[dict]:
    """ The number of posts for every hour of the day, in UTC

    :return: [{'_id': hour, 'posts': int}], by hour
    """
    return db.posts.aggregate([
        {'$addFields': {'hour': {'$hour': '$created_at'}}},
        {'$group': {'_id': '$hour', 'posts': {'$sum': 1}}},
        {'$sort': {'_id': 1}},
    ])
