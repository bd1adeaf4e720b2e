from typing import Callable, Iterable, Mapping


class CollectionSettingsDict(dict):
    """ Collection settings, with autocompletion and documentation

        It's a plain dict: every key is a keyword argument of some handler's `__init__()`,
        handed out by MongoQuerySettingsHandler. `<handler>_enabled` keys switch handlers off.

        Example:
            ```python
            from mongomem import DocumentStore, CollectionSettingsDict

            store = DocumentStore()
            users = store.create_collection('users', CollectionSettingsDict(
                # never return more than 100 users at once
                max_items=100,
                # never show email addresses
                force_exclude=('email',),
            ))
            ```
    """

    def __init__(self,
                 # --- project
                 force_exclude: Iterable[str] = None,
                 # --- filter
                 force_filter: dict = None,
                 scalar_operators: Mapping[str, Callable] = None,
                 # --- limit
                 max_items: int = None,
                 # --- enabled_handlers?
                 count_enabled: bool = True,
                 filter_enabled: bool = True,
                 limit_enabled: bool = True,
                 project_enabled: bool = True,
                 sort_enabled: bool = True,
                 ):
        """ Limits put on the queries made to a collection, and custom behaviors

        Args:
            force_exclude (list[str]): (for: project)
                A list of fields that will always be removed from the output of `find()`.
                No matter what you do, you can't see them.
                Aggregation pipelines are not affected.
            force_filter (dict): (for: filter)
                A filter that will be forced onto every request: it's ANDed to every `find()` filter,
                and applied to the input of every `aggregate()` pipeline.
            scalar_operators (dict[str, Callable]): (for: filter)
                A dict of additional filter operators.
                Every operator is a `callable(value, argument) -> bool`,
                where `value` is the field value (possibly ABSENT), and `argument` is the operator argument.
            max_items (int): (for: limit)
                The maximum number of items that can be loaded with `find()`.
                The user can never go any higher than that, and this value is forced onto every query.

            count_enabled (bool): Enable/disable the `count` handler
            filter_enabled (bool): Enable/disable the `filter` handler
            limit_enabled (bool): Enable/disable the `limit` handler
            project_enabled (bool): Enable/disable the `project` handler
            sort_enabled (bool): Enable/disable the `sort` handler
        """
        super(CollectionSettingsDict, self).__init__()
        self.update({k: v
                     for k, v in locals().items()
                     if k not in {'__class__', 'self'}})

    def and_more(self, **settings):
        """ Copy the object and add more settings to it """
        return self.__class__(**{**self, **settings})
