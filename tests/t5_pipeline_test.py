import unittest

from mongomem import MongoPipeline, DocumentStore, Reusable
from mongomem.document import values_equal
from mongomem.exc import ValidationError, DisabledError, InvalidCollectionError, DivisionByZeroError, TypeMismatchError
from .util import sample_posts, sample_store, utc, ids


class PipelineTest(unittest.TestCase):
    """ Test MongoPipeline: stages and accumulators """

    longMessage = True
    maxDiff = None

    def setUp(self):
        self.posts = sample_posts()

    def aggregate(self, pipeline, docs=None, **settings):
        """ Run a pipeline on the sample posts """
        return MongoPipeline('posts', handler_settings=settings).input(pipeline).end(
            self.posts if docs is None else docs)

    def test_match(self):
        self.assertEqual(ids(self.aggregate([{'$match': {'hashtags': '#mongodb'}}])), ['p1', 'p2'])
        self.assertEqual(ids(self.aggregate([{'$match': {}}])), ['p1', 'p2', 'p3', 'p4'])
        self.assertEqual(ids(self.aggregate([{'$match': {'user_id': 'u1'}},
                                             {'$match': {'metrics.likes': {'$lt': 5}}}])),
                         ['p2'])
        self.assertEqual(self.aggregate([]), self.posts)

    def test_unwind(self):
        # One document per element; empty arrays are dropped
        docs = self.aggregate([{'$unwind': '$hashtags'}])
        self.assertEqual([(d['_id'], d['hashtags']) for d in docs],
                         [('p1', '#mongodb'), ('p1', '#bigdata'), ('p2', '#mongodb'), ('p3', '#spark')])
        self.assertEqual(docs[0]['text'], self.posts[0]['text'])

        # Object syntax, includeArrayIndex
        docs = self.aggregate([{'$unwind': {'path': '$hashtags', 'includeArrayIndex': 'i'}}])
        self.assertEqual([(d['_id'], d['i']) for d in docs], [('p1', 0), ('p1', 1), ('p2', 0), ('p3', 0)])

        # preserveNullAndEmptyArrays: the empty array is removed
        docs = self.aggregate([{'$unwind': {'path': '$hashtags', 'preserveNullAndEmptyArrays': True}}])
        self.assertEqual(ids(docs), ['p1', 'p1', 'p2', 'p3', 'p4'])
        self.assertNotIn('hashtags', docs[4])
        self.assertEqual(docs[4]['text'], 'Old post')

        # Null, missing, scalars
        docs = [{'_id': 1, 'a': None}, {'_id': 2}, {'_id': 3, 'a': 5}, {'_id': 4, 'a': [[1, 2]]}]
        self.assertEqual(self.aggregate([{'$unwind': '$a'}], docs),
                         [{'_id': 3, 'a': 5}, {'_id': 4, 'a': [1, 2]}])
        self.assertEqual(self.aggregate([{'$unwind': {'path': '$a', 'preserveNullAndEmptyArrays': True,
                                                      'includeArrayIndex': 'i'}}], docs),
                         [{'_id': 1, 'a': None, 'i': None},
                          {'_id': 2, 'i': None},
                          {'_id': 3, 'a': 5, 'i': None},
                          {'_id': 4, 'a': [1, 2], 'i': 0}])

        # Nested path
        docs = [{'_id': 1, 'm': {'tags': ['x', 'y']}}]
        self.assertEqual(self.aggregate([{'$unwind': '$m.tags'}], docs),
                         [{'_id': 1, 'm': {'tags': 'x'}}, {'_id': 1, 'm': {'tags': 'y'}}])

    def test_group(self):
        # Count by key, in the order of first appearance
        docs = self.aggregate([
            {'$unwind': '$hashtags'},
            {'$group': {'_id': '$hashtags', 'uses': {'$sum': 1}}},
        ])
        self.assertEqual(docs, [{'_id': '#mongodb', 'uses': 2},
                                {'_id': '#bigdata', 'uses': 1},
                                {'_id': '#spark', 'uses': 1}])

        # All accumulators
        docs = self.aggregate([
            {'$group': {
                '_id': '$user_id',
                'likes': {'$sum': '$metrics.likes'},
                'avg': {'$avg': '$metrics.likes'},
                'min': {'$min': '$metrics.likes'},
                'max': {'$max': '$metrics.likes'},
                'all': {'$push': '$metrics.likes'},
                'tags': {'$addToSet': '$hashtags'},
                'first': {'$first': '$text'},
                'last': {'$last': '$text'},
                'first_metrics': {'$first': '$metrics'},
                'n': {'$count': {}},
            }},
        ])
        self.assertEqual(docs, [
            {'_id': 'u1', 'likes': 13, 'avg': 6.5, 'min': 3, 'max': 10, 'all': [10, 3],
             'tags': [['#mongodb', '#bigdata'], ['#mongodb']],
             'first': 'Hello #mongodb #bigdata', 'last': 'More #mongodb',
             'first_metrics': {'likes': 10, 'comments': 2}, 'n': 2},
            {'_id': 'u2', 'likes': 0, 'avg': 0.0, 'min': 0, 'max': 0, 'all': [0],
             'tags': [['#spark']],
             'first': 'Trying #spark', 'last': 'Trying #spark',
             'first_metrics': {'likes': 0, 'comments': 0}, 'n': 1},
            {'_id': 'u3', 'likes': 0, 'avg': None, 'min': None, 'max': None, 'all': [],
             'tags': [[]],
             'first': 'Old post', 'last': 'Old post',
             'first_metrics': None, 'n': 1},
        ])

        # $addToSet: unique values
        docs = self.aggregate([
            {'$unwind': '$hashtags'},
            {'$group': {'_id': None, 'tags': {'$addToSet': '$hashtags'}}},
        ])
        self.assertEqual(docs, [{'_id': None, 'tags': ['#mongodb', '#bigdata', '#spark']}])

        # A single group: null key, or a missing one
        self.assertEqual(self.aggregate([{'$group': {'_id': None, 'n': {'$sum': 1}}}]),
                         [{'_id': None, 'n': 4}])
        self.assertEqual(self.aggregate([{'$group': {'_id': '$missing', 'n': {'$sum': 1}}}]),
                         [{'_id': None, 'n': 4}])

        # Null and missing keys go into the same group
        docs = [{'_id': 1, 'k': None}, {'_id': 2}, {'_id': 3, 'k': 1}, {'_id': 4, 'k': 1.0}, {'_id': 5, 'k': True}]
        self.assertEqual(self.aggregate([{'$group': {'_id': '$k', 'ids': {'$push': '$_id'}}}], docs),
                         [{'_id': None, 'ids': [1, 2]}, {'_id': 1, 'ids': [3, 4]}, {'_id': True, 'ids': [5]}])

        # Compound keys
        docs = self.aggregate([
            {'$group': {'_id': {'user': '$user_id', 'has_metrics': {'$gt': ['$metrics.likes', -1]}},
                        'n': {'$sum': 1}}},
        ])
        self.assertEqual(docs, [{'_id': {'user': 'u1', 'has_metrics': True}, 'n': 2},
                                {'_id': {'user': 'u2', 'has_metrics': True}, 'n': 1},
                                {'_id': {'user': 'u3', 'has_metrics': False}, 'n': 1}])

        # Empty input: no groups
        self.assertEqual(self.aggregate([{'$group': {'_id': None, 'n': {'$sum': 1}}}], []), [])

    def test_group_conservation(self):
        """ Group counts always add up to the number of input documents """
        for key in ['$user_id', '$hashtags', '$metrics.likes', '$missing', None, {'$hour': '$created_at'}]:
            docs = self.aggregate([{'$group': {'_id': key, 'n': {'$sum': 1}}}])
            self.assertEqual(sum(d['n'] for d in docs), len(self.posts), msg=repr(key))
            # Keys are unique
            self.assertEqual(len(docs), len({repr(d['_id']) for d in docs}), msg=repr(key))

    def test_sort_limit_skip(self):
        self.assertEqual(ids(self.aggregate([{'$sort': {'created_at': -1}}])), ['p4', 'p3', 'p2', 'p1'])
        self.assertEqual(ids(self.aggregate([{'$sort': {'metrics.likes': -1}}, {'$limit': 2}])), ['p1', 'p2'])
        self.assertEqual(ids(self.aggregate([{'$skip': 1}, {'$limit': 2}])), ['p2', 'p3'])
        self.assertEqual(ids(self.aggregate([{'$limit': 2}, {'$skip': 1}])), ['p2'])
        self.assertEqual(self.aggregate([{'$limit': 0}]), [])
        self.assertEqual(self.aggregate([{'$skip': 10}]), [])

        # Sort + limit gives a prefix of the full sort
        full = ids(self.aggregate([{'$sort': {'metrics.likes': -1, 'created_at': 1}}]))
        for k in range(len(self.posts) + 2):
            self.assertEqual(ids(self.aggregate([{'$sort': {'metrics.likes': -1, 'created_at': 1}},
                                                 {'$limit': k}])),
                             full[:k], msg=k)

    def test_project(self):
        docs = self.aggregate([
            {'$project': {
                'text': 1,
                'engagement': {'$add': ['$metrics.likes', '$metrics.comments']},
            }},
        ])
        self.assertEqual(docs, [
            {'_id': 'p1', 'text': 'Hello #mongodb #bigdata', 'engagement': 12},
            {'_id': 'p2', 'text': 'More #mongodb', 'engagement': 7},
            {'_id': 'p3', 'text': 'Trying #spark', 'engagement': 0},
            {'_id': 'p4', 'text': 'Old post', 'engagement': None},
        ])

        # Exclusion
        docs = self.aggregate([{'$project': {'metrics': 0, 'hashtags': 0, 'created_at': 0, 'text': 0}}])
        self.assertEqual(docs[0], {'_id': 'p1', 'user_id': 'u1'})

        # Division by zero: an error, unless guarded with $cond
        docs = [{'_id': 1, 'likes': 10, 'posts': 0}, {'_id': 2, 'likes': 10, 'posts': 4}]
        with self.assertRaises(DivisionByZeroError):
            self.aggregate([{'$project': {'avg': {'$divide': ['$likes', '$posts']}}}], docs)
        self.assertEqual(
            self.aggregate([{'$project': {
                '_id': 0,
                'avg': {'$cond': [{'$gt': ['$posts', 0]}, {'$divide': ['$likes', '$posts']}, 0]},
            }}], docs),
            [{'avg': 0}, {'avg': 2.5}]
        )

    def test_add_fields(self):
        docs = self.aggregate([{'$addFields': {'hour': {'$hour': '$created_at'}}}])
        self.assertEqual([d['hour'] for d in docs], [10, 10, 14, 23])
        self.assertEqual(docs[0]['text'], self.posts[0]['text'])

        # Nested fields
        docs = self.aggregate([{'$set': {'metrics.total': {'$add': ['$metrics.likes', '$metrics.comments']}}}])
        self.assertEqual(docs[0]['metrics'], {'likes': 10, 'comments': 2, 'total': 12})
        self.assertEqual(docs[3]['metrics'], {'total': None})

        # All expressions see the input document; missing values are not added
        docs = [{'_id': 1, 'a': 1}]
        self.assertEqual(self.aggregate([{'$addFields': {'a': 2, 'b': '$a', 'c': '$missing'}}], docs),
                         [{'_id': 1, 'a': 2, 'b': 1}])

    def test_count(self):
        self.assertEqual(self.aggregate([{'$count': 'n'}]), [{'n': 4}])
        self.assertEqual(self.aggregate([{'$match': {'hashtags': '#mongodb'}}, {'$count': 'posts'}]),
                         [{'posts': 2}])
        # Nothing to count: no document at all
        self.assertEqual(self.aggregate([{'$match': {'hashtags': '#kafka'}}, {'$count': 'posts'}]), [])

    def test_lookup(self):
        store = sample_store()
        snapshot = store.snapshot()
        posts = snapshot.documents('posts')
        users = snapshot.documents('users')

        pipeline = MongoPipeline('posts', store).input([
            {'$lookup': {'from': 'users', 'localField': 'user_id', 'foreignField': '_id', 'as': 'user'}},
        ])
        docs = pipeline.end(posts, snapshot)
        self.assertEqual([[u['username'] for u in d['user']] for d in docs],
                         [['user5'], ['user5'], ['user7'], ['user12']])

        # Same as a nested loop join
        for doc in docs:
            self.assertEqual(doc['user'], [u for u in users if values_equal(u['_id'], doc['user_id'])])

        # A collection handle works as well
        pipeline = MongoPipeline('comments', store).input([
            {'$lookup': {'from': store['posts'], 'localField': 'post_id', 'foreignField': '_id', 'as': 'post'}},
            {'$unwind': '$post'},
            {'$project': {'_id': 1, 'user_id': '$post.user_id'}},
        ])
        self.assertEqual(pipeline.end(snapshot.documents('comments'), snapshot),
                         [{'_id': 'c1', 'user_id': 'u1'}, {'_id': 'c2', 'user_id': 'u1'},
                          {'_id': 'c3', 'user_id': 'u1'}, {'_id': 'c4', 'user_id': 'u2'}])

        # Without a store: take the store of the handle
        pipeline = MongoPipeline('posts').input([
            {'$lookup': {'from': store['users'], 'localField': 'user_id', 'foreignField': '_id', 'as': 'user'}},
        ])
        self.assertEqual(len(pipeline.end(posts)[0]['user']), 1)

        # No matches: an empty list
        docs = MongoPipeline('posts', store).input([
            {'$lookup': {'from': 'users', 'localField': 'text', 'foreignField': 'username', 'as': 'user'}},
        ]).end(posts, snapshot)
        self.assertEqual([d['user'] for d in docs], [[], [], [], []])

        # Null and missing values match each other; arrays match by element
        store.collection('keys').insert_many([{'_id': 1, 'k': None}, {'_id': 2}, {'_id': 3, 'k': 'a'},
                                              {'_id': 4, 'k': ['b', 'c']}])
        snapshot = store.snapshot()
        lookup = MongoPipeline('docs', store).input([
            {'$lookup': {'from': 'keys', 'localField': 'k', 'foreignField': 'k', 'as': 'joined'}},
            {'$project': {'_id': 1, 'joined': '$joined._id'}},
        ])
        docs = [{'_id': 'missing'}, {'_id': 'null', 'k': None}, {'_id': 'a', 'k': 'a'},
                {'_id': 'b', 'k': 'b'}, {'_id': 'list', 'k': ['a', 'c']}]
        self.assertEqual(lookup.end(docs, snapshot), [
            {'_id': 'missing', 'joined': [1, 2]},
            {'_id': 'null', 'joined': [1, 2]},
            {'_id': 'a', 'joined': [3]},
            {'_id': 'b', 'joined': [4]},
            {'_id': 'list', 'joined': [3, 4]},
        ])

        # Joined documents are copies
        docs = MongoPipeline('posts', store).input([
            {'$lookup': {'from': 'users', 'localField': 'user_id', 'foreignField': '_id', 'as': 'user'}},
        ]).end(posts, snapshot)
        docs[0]['user'][0]['username'] = 'changed'
        self.assertEqual(store['users'].find_one({'_id': 'u1'})['username'], 'user5')

        # Unknown collections: fail right away
        with self.assertRaises(InvalidCollectionError) as e:
            MongoPipeline('posts', store).input([
                {'$lookup': {'from': 'nope', 'localField': 'a', 'foreignField': 'b', 'as': 'c'}},
            ])
        self.assertEqual(e.exception.collection_name, 'nope')
        with self.assertRaises(InvalidCollectionError):
            MongoPipeline('posts').input([
                {'$lookup': {'from': 'users', 'localField': 'a', 'foreignField': 'b', 'as': 'c'}},
            ])
        # A collection from another store
        with self.assertRaises(ValidationError):
            MongoPipeline('posts', DocumentStore()).input([
                {'$lookup': {'from': store['users'], 'localField': 'a', 'foreignField': 'b', 'as': 'c'}},
            ])

    def test_errors(self):
        """ Invalid pipelines are rejected before anything runs """
        invalid_pipelines = [
            {'$match': {}},  # not a list
            [{'$match': {}, '$limit': 1}],  # two keys
            [{}],
            [{'$out': 'posts'}],  # unsupported stage
            [{'$match': []}],
            [{'$match': {'a': {'$bad': 1}}}],
            [{'$unwind': 'hashtags'}],  # not a field path
            [{'$unwind': {'path': '$a', 'preserveNullAndEmptyArrays': 1}}],
            [{'$unwind': {'path': '$a', 'unknown': 1}}],
            [{'$unwind': {'path': '$a', 'includeArrayIndex': '$i'}}],
            [{'$group': {'n': {'$sum': 1}}}],  # no _id
            [{'$group': {'_id': None, 'a.b': {'$sum': 1}}}],
            [{'$group': {'_id': None, 'n': 1}}],
            [{'$group': {'_id': None, 'n': {'$sum': 1, '$avg': 1}}}],
            [{'$group': {'_id': None, 'n': {'$median': 1}}}],
            [{'$group': {'_id': None, 'n': {'$count': 1}}}],
            [{'$group': {'_id': {'$unknown': 1}}}],
            [{'$sort': {}}],
            [{'$sort': {'a': 0}}],
            [{'$limit': -1}],
            [{'$limit': None}],
            [{'$limit': 1.5}],
            [{'$skip': 'a'}],
            [{'$project': {}}],
            [{'$project': {'a': 1, 'b': 0}}],
            [{'$addFields': {}}],
            [{'$addFields': {'$a': 1}}],
            [{'$lookup': {'from': 'users', 'localField': 'a', 'as': 'c'}}],
            [{'$lookup': {'from': 'users', 'localField': 'a', 'foreignField': 'b', 'as': '$c'}}],
            [{'$lookup': {'from': 1, 'localField': 'a', 'foreignField': 'b', 'as': 'c'}}],
            [{'$count': ''}],
            [{'$count': '$n'}],
            [{'$count': 1}],
            # Invalid stage after valid ones
            [{'$match': {}}, {'$limit': 1}, {'$bad': 1}],
        ]
        for pipeline in invalid_pipelines:
            with self.assertRaises(ValidationError, msg=repr(pipeline)):
                MongoPipeline('posts').input(pipeline)

        # The stage is mentioned
        with self.assertRaises(ValidationError) as e:
            MongoPipeline('posts').input([{'$match': {}}, {'$sort': {}}])
        self.assertEqual(e.exception.err, 'pipeline stage #1 ($sort): must have at least one sort key')

        # Runtime errors
        with self.assertRaises(TypeMismatchError):
            self.aggregate([{'$match': {'text': {'$gt': 1}}}])
        with self.assertRaises(TypeMismatchError):
            self.aggregate([{'$project': {'x': {'$add': ['$text', 1]}}}])

    def test_settings(self):
        """ Collection settings in pipelines """
        # force_filter: applied to the input
        docs = self.aggregate([{'$group': {'_id': None, 'n': {'$sum': 1}}}], force_filter={'user_id': 'u1'})
        self.assertEqual(docs, [{'_id': None, 'n': 2}])
        # ... but not to later stages
        docs = self.aggregate([{'$project': {'user_id': 'x'}}], force_filter={'user_id': 'u1'})
        self.assertEqual(docs, [{'_id': 'p1', 'user_id': 'x'}, {'_id': 'p2', 'user_id': 'x'}])

        # max_items and force_exclude: find() only
        self.assertEqual(len(self.aggregate([], max_items=1)), 4)
        self.assertEqual(len(self.aggregate([{'$limit': 3}], max_items=1)), 3)
        self.assertIn('metrics', self.aggregate([], force_exclude=('metrics',))[0])
        self.assertIn('metrics', self.aggregate([{'$project': {'metrics': 1}}], force_exclude=('metrics',))[0])

        # scalar_operators: available to $match
        startswith = lambda value, prefix: isinstance(value, str) and value.startswith(prefix)
        docs = self.aggregate([{'$match': {'text': {'$startswith': 'More'}}}],
                              scalar_operators={'$startswith': startswith})
        self.assertEqual(ids(docs), ['p2'])

        # Disabled handlers disable the stages
        for stage, setting in [({'$match': {}}, 'filter_enabled'),
                               ({'$sort': {'a': 1}}, 'sort_enabled'),
                               ({'$limit': 1}, 'limit_enabled'),
                               ({'$skip': 1}, 'limit_enabled'),
                               ({'$project': {'a': 1}}, 'project_enabled'),
                               ({'$count': 'n'}, 'count_enabled')]:
            with self.assertRaises(DisabledError, msg=repr(stage)):
                MongoPipeline('posts', handler_settings={setting: False}).input([stage])
        # Other stages still work
        self.assertEqual(len(self.aggregate([{'$unwind': '$hashtags'}], filter_enabled=False)), 4)

        # Invalid settings
        with self.assertRaises(KeyError):
            MongoPipeline('posts', handler_settings=dict(max_itemz=1))

    def test_reusable(self):
        """ A pipeline can be reused with Reusable() """
        pipeline = Reusable(MongoPipeline('posts'))
        self.assertEqual(pipeline.input([{'$count': 'n'}]).end(self.posts), [{'n': 4}])
        self.assertEqual(pipeline.input([{'$limit': 1}]).end(self.posts), self.posts[:1])

    def test_input_is_never_modified(self):
        self.aggregate([
            {'$unwind': {'path': '$hashtags', 'preserveNullAndEmptyArrays': True, 'includeArrayIndex': 'i'}},
            {'$addFields': {'metrics.likes': 0, 'hour': {'$hour': '$created_at'}}},
            {'$project': {'metrics.comments': 0}},
            {'$sort': {'hour': 1}},
        ])
        self.aggregate([
            {'$group': {'_id': '$user_id', 'all': {'$push': '$$ROOT'}, 'm': {'$first': '$metrics'}}},
        ])
        self.assertEqual(self.posts, sample_posts())

    def test_timestamps(self):
        docs = self.aggregate([
            {'$match': {'created_at': {'$gte': utc(2024, 5, 2), '$lt': utc(2024, 5, 4)}}},
            {'$project': {'_id': 1, 'day': {'$dayOfMonth': '$created_at'}}},
        ])
        self.assertEqual(docs, [{'_id': 'p2', 'day': 2}, {'_id': 'p3', 'day': 3}])
