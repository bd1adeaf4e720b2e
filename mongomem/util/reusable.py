from copy import copy


class Reusable:
    """ Wrap a handler, a query, or a pipeline, so it can be used many times

        Handlers and queries accept their input only once. Parsing their settings every time is a waste,
        so this wrapper keeps a pristine object and gives you a fresh copy on every attribute access:

            match = Reusable(MongoFilter('posts', force_filter={'deleted': False}))
            match.input({'user_id': 1}).apply(docs)
            match.input({'user_id': 2}).apply(docs)  # a new copy: no RuntimeError

            query = Reusable(MongoQuery('posts', CollectionSettingsDict(max_items=100)))
    """
    __slots__ = ('__wrapped',)

    def __init__(self, obj):
        self.__wrapped = obj

    def __getattr__(self, attr):
        # copy-on-access
        return getattr(copy(self.__wrapped), attr)

    def __repr__(self):
        return 'Reusable({!r})'.format(self.__wrapped)
