import logging
from typing import List, Optional, Tuple, Union

from ..store import DocumentStore
from .models import User, Post, Comment

logger = logging.getLogger(__name__)


class SocialDB:
    """ A social network database: users, posts, comments

        Example:

            db = SocialDB()
            user_id = db.add_user(User(username='user_test', name='Test User', email='test@example.com'))
            post_id = db.add_post(Post.from_text(user_id, 'Testing #mongodb and #bigdata'))
            db.like_post(post_id, 5)
    """

    def __init__(self, store: DocumentStore = None):
        """ Init the database

        :param store: The store to keep the collections in. Default: a new one
        """
        self.store = store or DocumentStore()
        self.users = self.store.collection('users')
        self.posts = self.store.collection('posts')
        self.comments = self.store.collection('comments')

    # region Users

    def add_user(self, user: Union[User, dict]):
        """ Add a user

        :return: User id
        :raises pydantic.ValidationError: invalid user
        :raises DuplicateKeyError: the id is taken
        """
        return self.users.insert_one(_to_document(User, user))

    def get_user(self, username: str) -> Optional[User]:
        """ Find a user by username """
        doc = self.users.find_one({'username': username})
        return User.from_document(doc) if doc else None

    def update_bio(self, user_id, bio: str) -> int:
        """ Change the bio of a user

        :return: The number of users modified
        """
        return self.users.update_one({'_id': user_id}, {'$set': {'bio': bio}})

    def remove_user(self, user_id) -> Tuple[int, int]:
        """ Remove a user, and all their posts

        :return: (posts deleted, users deleted)
        """
        posts_deleted = self.posts.delete_many({'user_id': user_id})
        users_deleted = self.users.delete_one({'_id': user_id})
        logger.debug('Removed user %r with %d posts', user_id, posts_deleted)
        return posts_deleted, users_deleted

    # endregion

    # region Posts

    def add_post(self, post: Union[Post, dict]):
        """ Add a post

        :return: Post id
        """
        return self.posts.insert_one(_to_document(Post, post))

    def posts_of(self, user_id) -> List[Post]:
        """ All posts of a user, newest first """
        return [Post.from_document(doc)
                for doc in self.posts.find({'user_id': user_id}, sort=[('created_at', -1)])]

    def latest_post_of(self, user_id) -> Optional[Post]:
        """ The most recent post of a user """
        doc = self.posts.find_one({'user_id': user_id}, sort=[('created_at', -1)])
        return Post.from_document(doc) if doc else None

    def like_post(self, post_id, likes: int = 1) -> int:
        """ Add likes to a post. Safe to use concurrently: no like is ever lost.

        :param likes: A positive integer
        :return: The number of posts modified
        :raises ValueError: `likes` is not a positive integer
        """
        if isinstance(likes, bool) or not isinstance(likes, int) or likes < 1:
            raise ValueError('likes must be a positive integer, {!r} given'.format(likes))
        return self.posts.update_one({'_id': post_id}, {'$inc': {'metrics.likes': likes}})

    # endregion

    # region Comments

    def add_comment(self, comment: Union[Comment, dict]):
        """ Add a comment, and count it in the metrics of the post

        :return: Comment id
        """
        doc = _to_document(Comment, comment)
        comment_id = self.comments.insert_one(doc)
        self.posts.update_one({'_id': doc['post_id']}, {'$inc': {'metrics.comments': 1}})
        return comment_id

    # endregion


def _to_document(model_cls, value) -> dict:
    """ Validate a model or a dict, convert it into a document """
    if not isinstance(value, model_cls):
        value = model_cls.model_validate(value)
    return value.to_document()
