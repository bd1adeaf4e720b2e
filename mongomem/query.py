from copy import copy

from . import handlers
from .exc import ValidationError
from .util import MongoQuerySettingsHandler


class MongoQuery:
    """ MongoDB-style queries over a list of documents

        This is what `Collection.find()` uses under the hood.
        It can be used on any list of dicts, though:

            MongoQuery('posts').query(filter={'hashtags': '#mongodb'}, sort=['created_at-'], limit=5).end(posts)

        A query is made of handlers, one per Query Object section.
        query() feeds every handler its section; end() runs them one after another.
    """

    def __init__(self, collection_name, handler_settings=None):
        """ Init a MongoDB-style query

        :param collection_name: Name of the collection to query. Used in error messages.
        :type collection_name: str
        :param handler_settings: Collection settings: a flat dict of keyword arguments for the handlers.
            Every handler picks the keys it knows; unknown keys raise a KeyError.

            Handler settings:
                project: force_exclude
                filter: force_filter, scalar_operators
                limit: max_items

            Switches, all `True` by default:
                project_enabled, filter_enabled, sort_enabled, limit_enabled, count_enabled

            See: CollectionSettingsDict
        :type handler_settings: dict | CollectionSettingsDict | None
        :raises KeyError: invalid settings
        """
        self.collection_name = collection_name
        self._handler_settings = MongoQuerySettingsHandler(handler_settings or {})
        self._init_query_object_handlers()

        # Anything added here that can't be shared between copies has to be copied in __copy__()

    def __copy__(self):
        """ Copy the query along with its handlers

            Settings are parsed once, in __init__(); every copy gets its own handlers to input().
            See: Reusable
        """
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)

        for name in self.HANDLER_ATTR_NAMES:
            setattr(result, name, copy(getattr(result, name)))
        return result

    def query(self, **query_object):
        """ Load a Query Object

        :param filter: Filter criteria
        :param project: Projection
        :param sort: Sort order
        :param skip: Skip documents
        :param limit: Limit documents
        :param count: Count the documents instead of returning them
        :raises ValidationError: unknown Query Object keys, or an invalid section
        :raises DisabledError: a disabled section was used
        :rtype: MongoQuery
        """
        # Handlers may rewrite the Query Object first
        for handler_name, handler in self._handlers():
            query_object = handler.input_prepare_query_object(query_object)

        unknown = set(query_object) - self.HANDLER_NAMES
        if unknown:
            raise ValidationError('Unknown Query Object operations: {}'.format(', '.join(sorted(unknown))))

        # Every handler gets an input, even an empty one: settings like `max_items` or `force_filter`
        # apply regardless
        for handler_name, handler in self._handlers():
            handler.with_mongoquery(self)

            value = query_object.get(handler_name, None)
            if value is not None:
                self._handler_settings.raise_if_not_handler_enabled(self.collection_name, handler_name)
            handler.input(value)

        return self

    def end(self, documents):
        """ Run the query over the documents

        The documents are never modified, but the results may share values with them:
        copy them if you're going to modify the results.

        :param documents: The documents to query
        :type documents: Iterable[dict]
        :return: The resulting documents, or their number when `count` was requested
        :rtype: list[dict] | int
        :raises TypeMismatchError: the filter compared values of incompatible kinds
        """
        result = list(documents)
        for handler_name, handler in self._handlers():
            result = handler.apply(result)
        return result

    def matches(self, doc):
        """ Does a document pass the filter? `force_filter` included """
        return self.handler_filter.matches(doc)

    def get_final_query_object(self):
        """ The Query Object as it will actually run: with the settings applied

            Handy for logging.
        """
        return {name: handler.get_final_input_value()
                for name, handler in self._handlers()
                if handler.input_received and not handler.is_input_empty()}

    def __repr__(self):
        return 'MongoQuery({!r})'.format(self.collection_name)

    # region Query Object handlers

    # Handler classes. Override them in a subclass to customize a section.

    _QO_HANDLER_PROJECT = handlers.MongoProject
    _QO_HANDLER_SORT = handlers.MongoSort
    _QO_HANDLER_FILTER = handlers.MongoFilter
    _QO_HANDLER_LIMIT = handlers.MongoLimit
    _QO_HANDLER_COUNT = handlers.MongoCount

    HANDLER_NAMES = frozenset(('project', 'sort', 'filter', 'limit', 'count'))
    HANDLER_ATTR_NAMES = frozenset('handler_' + name for name in HANDLER_NAMES)

    def _handlers(self):
        """ (handler_name, handler) pairs, in the order they're applied """
        return (
            # filter first: the rest only sees matching documents
            ('filter', self.handler_filter),
            # sort before limit: pages depend on the order
            ('sort', self.handler_sort),
            ('limit', self.handler_limit),
            # project after sort: one may sort by a field that's not projected
            ('project', self.handler_project),
            # count last: counts, or passes through
            ('count', self.handler_count),
        )

    # for IDE completion
    handler_project = None  # type: handlers.MongoProject
    handler_sort = None  # type: handlers.MongoSort
    handler_filter = None  # type: handlers.MongoFilter
    handler_limit = None  # type: handlers.MongoLimit
    handler_count = None  # type: handlers.MongoCount

    def _init_query_object_handlers(self):
        """ Create a handler for every section, give it its settings """
        for name in self.HANDLER_NAMES:
            handler_cls = getattr(self, '_QO_HANDLER_' + name.upper())
            setattr(self, 'handler_' + name, self._init_handler(name, handler_cls))

        self._handler_settings.raise_if_invalid_handler_settings(self)

    def _init_handler(self, handler_name, handler_cls):
        settings = self._handler_settings.get_settings(handler_name, handler_cls)
        return handler_cls(self.collection_name, **settings)

    # endregion
