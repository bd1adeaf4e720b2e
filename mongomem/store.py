"""
### Document Store

The store keeps named collections of documents in memory:

```python
from mongomem import DocumentStore

store = DocumentStore()
users = store.collection('users')
users.insert_one({'username': 'ana'})
```

#### Concurrency

The store is safe to use from multiple threads.

The state of the store is an immutable mapping: `collection name => {_id: document}`.
Writers never modify it: they build a new mapping, and swap it in.
Readers take the mapping that's current at the moment, and that's their point-in-time snapshot:
it stays consistent across all collections, no matter what the writers do, and reads never wait for anyone.

Writes to one collection are serialized: one writer at a time. This is why `$inc` never loses an update.
Writes to different collections don't wait for each other, except for the very short moment of the swap.
"""

import logging
import threading
from contextlib import contextmanager

from .collection import Collection
from .document import generate_id
from .exc import ValidationError, InvalidCollectionError

logger = logging.getLogger(__name__)


class Snapshot:
    """ A consistent read-only view of every collection at one point in time """

    __slots__ = ('_state',)

    def __init__(self, state):
        self._state = state

    def __contains__(self, collection_name):
        return collection_name in self._state

    def collection_names(self):
        return list(self._state)

    def documents(self, collection_name):
        """ Get the documents of a collection, in insertion order

            These are the documents stored in the store: do not modify them!
            A collection that does not exist has no documents.

        :rtype: list[dict]
        """
        return list(self._state.get(collection_name, {}).values())


class DocumentStore:
    """ In-memory storage for named collections of documents """

    # The class to use for collections
    _COLLECTION_CLS = Collection

    def __init__(self, id_factory=None):
        """ Init an empty store

        :param id_factory: A callable that generates `_id`s for documents inserted without one.
            Default: 24 hex digits, like a MongoDB ObjectId.
        :type id_factory: Callable[[], Any] | None
        """
        self._id_factory = id_factory or generate_id

        #: The current state: { collection name: { frozen _id: document } }
        #: Never modified: replaced as a whole.
        self._state = {}

        #: Collection objects, by name
        self._collections = {}

        #: Writer locks, by collection name
        self._write_locks = {}

        #: Guards the swap of the state, and the creation of collections
        self._commit_lock = threading.Lock()

    def new_id(self):
        """ Generate a new `_id` """
        return self._id_factory()

    # region Collections

    def create_collection(self, name, settings=None):
        """ Create a collection

        :param name: Collection name
        :param settings: Collection settings. See: CollectionSettingsDict
        :type settings: dict | CollectionSettingsDict | None
        :rtype: Collection
        :raises ValidationError: invalid name, or settings given for an existing collection
        :raises KeyError: invalid settings
        """
        if not isinstance(name, str) or not name or name.startswith('$') or '\0' in name:
            raise ValidationError('Invalid collection name: {!r}'.format(name))

        with self._commit_lock:
            # Exists
            if name in self._collections:
                if settings is not None:
                    raise ValidationError('Collection "{}" already exists: cannot change its settings'.format(name))
                return self._collections[name]

            # Create
            collection = self._COLLECTION_CLS(self, name, settings)
            self._collections[name] = collection
            self._write_locks[name] = threading.Lock()
            self._state = {**self._state, name: {}}

        logger.info('Created collection %r', name)
        return collection

    def collection(self, name):
        """ Get a collection; create it if it does not exist

        :rtype: Collection
        """
        try:
            return self._collections[name]
        except KeyError:
            return self.create_collection(name)

    def __getitem__(self, name):
        """ Get an existing collection

        :rtype: Collection
        :raises InvalidCollectionError: no such collection
        """
        try:
            return self._collections[name]
        except KeyError:
            raise InvalidCollectionError(name, 'store')

    def __contains__(self, name):
        return name in self._state

    def collection_names(self):
        """ Names of all collections, in the order of their creation """
        return list(self._state)

    def drop_collection(self, name):
        """ Remove a collection with all its documents

        :return: Whether the collection existed
        :rtype: bool
        """
        lock = self._write_locks.get(name)
        if lock is None:
            return False

        # Wait for the writer to finish
        with lock:
            with self._commit_lock:
                # Dropped by someone else while we were waiting
                if self._write_locks.get(name) is not lock or name not in self._state:
                    return False
                self._state = {k: v for k, v in self._state.items() if k != name}
                self._collections.pop(name, None)
                self._write_locks.pop(name, None)

        logger.info('Dropped collection %r', name)
        return True

    # endregion

    # region Reading and Writing

    def snapshot(self):
        """ Get a consistent read-only view of every collection

        :rtype: Snapshot
        """
        return Snapshot(self._state)

    @contextmanager
    def writing(self, collection_name):
        """ Become the only writer to a collection

            Yields the current documents of the collection: { frozen _id: document }.
            Do not modify it: build a new dict, and give it to commit() before leaving the block.

        :raises InvalidCollectionError: the collection does not exist (or was dropped)
        """
        try:
            lock = self._write_locks[collection_name]
        except KeyError:
            raise InvalidCollectionError(collection_name, 'write')

        with lock:
            # Dropped while we were waiting; maybe even created anew, with another lock
            if self._write_locks.get(collection_name) is not lock or collection_name not in self._state:
                raise InvalidCollectionError(collection_name, 'write')
            yield self._state[collection_name]

    def commit(self, collection_name, documents):
        """ Replace the documents of a collection

            Must only be called from within the writing() block for this collection.

        :param documents: { frozen _id: document }
        """
        with self._commit_lock:
            self._state = {**self._state, collection_name: documents}

    # endregion

    def __repr__(self):
        return 'DocumentStore({})'.format(', '.join(self._state))
