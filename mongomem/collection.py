"""
### Collections

A collection is a named set of documents, with the familiar MongoDB methods:

```python
post_id = posts.insert_one({'user_id': user_id, 'text': 'Hello #mongodb', 'hashtags': ['#mongodb']})

posts.find({'hashtags': '#mongodb'}, sort=[('created_at', -1)], limit=10).to_list()
posts.find_one({'_id': post_id})

posts.update_one({'_id': post_id}, {'$inc': {'metrics.likes': 1}})
posts.delete_many({'user_id': user_id})

posts.aggregate([{'$unwind': '$hashtags'}, {'$group': {'_id': '$hashtags', 'uses': {'$sum': 1}}}])
```

Documents go in and come out as copies: modifying a document you've given to the collection,
or one you've got from it, never affects the stored data.

Updates and deletes never complain when nothing matches: they just return `0`.
"""

import logging
from copy import deepcopy

from .document import ABSENT, get_path, is_array, freeze, values_equal
from .exc import ValidationError, DuplicateKeyError
from .handlers import MongoUpdate
from .pipeline import MongoPipeline
from .query import MongoQuery
from .util import Reusable

logger = logging.getLogger(__name__)


class Cursor:
    """ The result of a find()

        The cursor is lazy: the query runs when you iterate over it.
        The documents are taken from a snapshot made by find(): later writes are never seen.
        The cursor is restartable: you can iterate over it as many times as you like, with the same results.

        Until then, you can still chain more options:

            posts.find({'user_id': user_id}).sort('created_at-').limit(1)
    """

    def __init__(self, collection, documents, query_object):
        """ Init a cursor

        :param collection: The collection
        :type collection: Collection
        :param documents: The snapshot of documents to query
        :type documents: list[dict]
        :param query_object: Query Object: filter, project, sort, skip, limit
        :type query_object: dict
        """
        self._collection = collection
        self._documents = documents
        self._query_object = query_object

        # Validate right away
        self._make_query()

    def _make_query(self, **query_object):
        """ Parse the Query Object

        :rtype: MongoQuery
        :raises ValidationError
        """
        return self._collection._query.query(**{**self._query_object, **query_object})

    def _chain(self, **query_object):
        """ Replace some Query Object values """
        self._query_object = {**self._query_object, **query_object}
        self._make_query()
        return self

    def sort(self, sort):
        """ Set the sort order. See: MongoSort """
        return self._chain(sort=sort)

    def skip(self, skip):
        """ Skip the first `skip` documents """
        return self._chain(skip=skip)

    def limit(self, limit):
        """ Give at most `limit` documents """
        return self._chain(limit=limit)

    def __iter__(self):
        for doc in self._make_query().end(self._documents):
            yield deepcopy(doc)

    def to_list(self):
        """ Get all the documents

        :rtype: list[dict]
        """
        return list(self)

    def count(self):
        """ The number of documents the cursor would give, with skip and limit applied """
        return len(self._make_query(project=None).end(self._documents))

    __len__ = count

    def __repr__(self):
        return 'Cursor({!r}, {!r})'.format(self._collection.name, self._query_object)


class Collection:
    """ A named collection of documents

        Don't create it directly: use DocumentStore.collection()
    """

    def __init__(self, store, name, settings=None):
        """ Init a collection

        :param store: The store this collection belongs to
        :type store: mongomem.store.DocumentStore
        :param name: Collection name
        :param settings: Collection settings. See: CollectionSettingsDict
        :type settings: dict | CollectionSettingsDict | None
        :raises KeyError: invalid settings
        """
        self.store = store
        self.name = name
        self.settings = settings or {}

        # Queries and pipelines are initialized once, and reused: every use works on a copy
        self._query = Reusable(MongoQuery(name, self.settings))
        self._pipeline = Reusable(MongoPipeline(name, store, self.settings))

    def __repr__(self):
        return 'Collection({!r})'.format(self.name)

    def _documents(self):
        """ Get a snapshot of the documents """
        return self.store.snapshot().documents(self.name)

    # region Insert

    def _prepare_insert(self, doc):
        """ Copy a document for insertion, give it an `_id` """
        if not isinstance(doc, dict):
            raise ValidationError('Document must be an object, {} given'.format(type(doc).__name__))
        doc = deepcopy(doc)
        if '_id' not in doc:
            doc['_id'] = self.store.new_id()
        return doc

    def insert_one(self, doc):
        """ Insert a document

        :param doc: The document. It's not modified: a copy is stored.
        :type doc: dict
        :return: The `_id` of the document
        :raises DuplicateKeyError: a document with the same `_id` already exists
        """
        return self.insert_many([doc])[0]

    def insert_many(self, docs):
        """ Insert many documents

            All or nothing: when any of the documents can't be inserted, none of them are.

        :type docs: Iterable[dict]
        :return: The list of `_id`s
        :raises DuplicateKeyError: a document with the same `_id` already exists, or was given twice
        """
        docs = [self._prepare_insert(doc) for doc in docs]

        with self.store.writing(self.name) as current:
            new = dict(current)
            for doc in docs:
                key = freeze(doc['_id'])
                if key in new:
                    raise DuplicateKeyError(self.name, doc['_id'])
                new[key] = doc
            self.store.commit(self.name, new)

        logger.debug('%s: inserted %d documents', self.name, len(docs))
        return [doc['_id'] for doc in docs]

    # endregion

    # region Find

    def find(self, filter=None, projection=None, sort=None, skip=None, limit=None):
        """ Find documents

        :param filter: Filter criteria. See: MongoFilter
        :param projection: Projection spec. See: MongoProject
        :param sort: Sort spec. See: MongoSort
        :param skip: Skip documents
        :param limit: Limit documents. `None` for no limit.
        :rtype: Cursor
        :raises ValidationError: invalid query
        """
        return Cursor(self, self._documents(), dict(filter=filter, project=projection, sort=sort,
                                                    skip=skip, limit=limit))

    def find_one(self, filter=None, projection=None, sort=None):
        """ Find a single document

        :return: The document, or None
        :rtype: dict | None
        """
        for doc in self.find(filter, projection, sort, limit=1):
            return doc
        return None

    def count_documents(self, filter=None):
        """ Count the documents that match a filter

        :rtype: int
        """
        return self._query.query(filter=filter, count=True).end(self._documents())

    def distinct(self, field, filter=None):
        """ Unique values of a field, in the order of their first appearance

            Arrays contribute their elements.

        :param field: Dotted field name
        :rtype: list
        """
        query = self._query.query(filter=filter)

        seen = {}
        for doc in self._documents():
            if not query.matches(doc):
                continue
            value = get_path(doc, field)
            for v in (value if is_array(value) else [value]):
                if v is not ABSENT:
                    seen.setdefault(freeze(v), v)
        return deepcopy(list(seen.values()))

    # endregion

    # region Update & Delete

    def update_one(self, filter, update):
        """ Update the first document that matches the filter

        :param filter: Filter criteria
        :param update: {'$set': {...}} or {'$inc': {...}}
        :return: The number of documents that were modified: 0 or 1
        :raises ValidationError: invalid filter or update
        :raises TypeMismatchError: $inc on a non-numeric value
        """
        return self._update(filter, update, multi=False)

    def update_many(self, filter, update):
        """ Update all documents that match the filter

            All or nothing: when the update fails for any of the documents, nothing is changed.

        :return: The number of documents that were modified
        """
        return self._update(filter, update, multi=True)

    def _update(self, filter, update, multi):
        query = self._query.query(filter=filter)
        update = MongoUpdate(self.name).input(update)

        modified = 0
        with self.store.writing(self.name) as current:
            new = None
            for key, doc in current.items():
                if not query.matches(doc):
                    continue

                updated = update.update_document(doc)
                if not values_equal(updated, doc):
                    new = new or dict(current)
                    new[key] = updated
                    modified += 1

                if not multi:
                    break

            if new is not None:
                self.store.commit(self.name, new)

        logger.debug('%s: %s modified %d documents', self.name, update.operator, modified)
        return modified

    def delete_one(self, filter):
        """ Delete the first document that matches the filter

        :return: The number of documents deleted: 0 or 1
        """
        return self._delete(filter, multi=False)

    def delete_many(self, filter):
        """ Delete all documents that match the filter

        :return: The number of documents deleted
        """
        return self._delete(filter, multi=True)

    def _delete(self, filter, multi):
        query = self._query.query(filter=filter)

        with self.store.writing(self.name) as current:
            keys = []
            for key, doc in current.items():
                if query.matches(doc):
                    keys.append(key)
                    if not multi:
                        break

            if keys:
                deleted = set(keys)
                self.store.commit(self.name, {k: v for k, v in current.items() if k not in deleted})

        logger.debug('%s: deleted %d documents', self.name, len(keys))
        return len(keys)

    # endregion

    # region Aggregate

    def aggregate(self, pipeline):
        """ Run an aggregation pipeline

            The pipeline runs against a snapshot of the whole store: `$lookup` sees the same state.

        :param pipeline: List of stages. See: MongoPipeline
        :type pipeline: list[dict]
        :rtype: list[dict]
        :raises ValidationError: invalid pipeline
        :raises InvalidCollectionError: $lookup from a collection that does not exist
        :raises TypeMismatchError: values of incompatible kinds were compared or used in arithmetic
        :raises DivisionByZeroError: $divide or $mod by zero
        """
        pipeline = self._pipeline.input(pipeline)

        snapshot = self.store.snapshot()
        result = pipeline.end(snapshot.documents(self.name), snapshot)
        return deepcopy(result)

    # endregion
