from datetime import datetime, timezone

from mongomem import DocumentStore


def utc(*args):
    """ A timestamp in UTC """
    return datetime(*args, tzinfo=timezone.utc)


def sample_users():
    return [
        {'_id': 'u1', 'username': 'user5', 'name': 'Ana', 'email': 'ana@example.com',
         'created_at': utc(2024, 1, 1), 'bio': 'Data person'},
        {'_id': 'u2', 'username': 'user7', 'name': 'Bob', 'email': 'bob@example.com',
         'created_at': utc(2024, 1, 2), 'bio': ''},
        {'_id': 'u3', 'username': 'user12', 'name': 'Cid', 'email': 'cid@example.com',
         'created_at': utc(2024, 1, 3), 'bio': 'Legacy'},
    ]


def sample_posts():
    return [
        {'_id': 'p1', 'user_id': 'u1', 'text': 'Hello #mongodb #bigdata', 'hashtags': ['#mongodb', '#bigdata'],
         'created_at': utc(2024, 5, 1, 10), 'metrics': {'likes': 10, 'comments': 2}},
        {'_id': 'p2', 'user_id': 'u1', 'text': 'More #mongodb', 'hashtags': ['#mongodb'],
         'created_at': utc(2024, 5, 2, 10, 30), 'metrics': {'likes': 3, 'comments': 4}},
        {'_id': 'p3', 'user_id': 'u2', 'text': 'Trying #spark', 'hashtags': ['#spark'],
         'created_at': utc(2024, 5, 3, 14), 'metrics': {'likes': 0, 'comments': 0}},
        # A legacy post: no metrics at all
        {'_id': 'p4', 'user_id': 'u3', 'text': 'Old post', 'hashtags': [],
         'created_at': utc(2024, 5, 4, 23)},
    ]


def sample_comments():
    return [
        {'_id': 'c1', 'post_id': 'p1', 'text': 'Nice'},
        {'_id': 'c2', 'post_id': 'p1', 'text': 'Agreed'},
        {'_id': 'c3', 'post_id': 'p2', 'text': 'Hm'},
        {'_id': 'c4', 'post_id': 'p3', 'text': 'Cool'},
    ]


def sample_store(**settings):
    """ A store with users, posts, comments

    :param settings: Settings for collections: {collection name: settings}
    """
    store = DocumentStore()
    for name, docs in (('users', sample_users()), ('posts', sample_posts()), ('comments', sample_comments())):
        store.create_collection(name, settings.get(name)).insert_many(docs)
    return store


def ids(docs):
    """ Get the list of `_id`s """
    return [doc['_id'] for doc in docs]
