"""
### Aggregation Pipelines

A pipeline is a list of stages. Every stage receives the documents produced by the previous one,
and gives its output to the next one:

```python
posts.aggregate([
    {'$unwind': '$hashtags'},
    {'$group': {'_id': '$hashtags', 'uses': {'$sum': 1}}},
    {'$sort': {'uses': -1}},
    {'$limit': 5},
])
```

Stages run strictly in the given order: the result is always the same as applying each stage, one by one, by hand.
The whole pipeline is validated before anything runs: a malformed stage fails the pipeline right away.

#### Stages

* `{'$match': filter}`: keep the documents that match a [filter](#filter-operation)
* `{'$unwind': '$field'}`: one output document for every element of an array.
    Documents where the array is empty, `null` or missing are dropped.
    Use the object syntax to keep them: `{'$unwind': {'path': '$field', 'preserveNullAndEmptyArrays': True}}`.
    The `includeArrayIndex` option puts the index of the element into a field.
* `{'$group': {'_id': <expression>, label: {<accumulator>: <expression>}, ...}}`: one document per distinct key,
    in the order of their first appearance. See [Group Accumulators](#group-accumulators).
* `{'$sort': {field: 1 | -1, ...}}`: stable sorting, see [Sort Operation](#sort-operation)
* `{'$limit': n}`, `{'$skip': n}`: slicing
* `{'$project': {field: 1 | 0 | <expression>}}`: reshape documents, see [Project Operation](#project-operation)
* `{'$addFields': {field: <expression>}}`, `{'$set': ...}`: add computed fields, keep the rest
* `{'$lookup': {'from': 'users', 'localField': 'user_id', 'foreignField': '_id', 'as': 'user'}}`:
    attach the matching documents from another collection as a list.
    `from` is a collection name, or a `Collection` object; a collection that does not exist
    is an `InvalidCollectionError` right when the pipeline is built.
* `{'$count': 'field'}`: a single document with the number of documents

Expressions are described in [Aggregation Expressions](#aggregation-expressions).

#### Consistency

A pipeline runs against a snapshot of the whole store, taken when it starts.
`$lookup` reads the other collection from the same snapshot, so concurrent writes never show up half-way.
"""

import logging

from ..expressions import ExpressionEvaluator
from ..exc import ValidationError
from ..handlers import MongoFilter, MongoSort, MongoLimit, MongoProject, MongoCount
from ..util import MongoQuerySettingsHandler
from .stages import STAGES, StageBase

logger = logging.getLogger(__name__)


class MongoPipeline:
    """ MongoDB-style aggregation pipeline

        This is what `Collection.aggregate()` uses under the hood.
        It can be used on any list of dicts, though:

            MongoPipeline('posts').input([{'$unwind': '$hashtags'}]).end(posts)

        Collection settings apply to pipelines in the following way:

        * `force_filter` is applied to the input documents
        * `scalar_operators` are available to every `$match`
        * `<handler>_enabled=False` disables the stages based on that handler:
            `filter` => `$match`, `sort` => `$sort`, `limit` => `$limit` and `$skip`, `project` => `$project`,
            `count` => `$count`
        * `force_exclude` and `max_items` only apply to `find()`; pipelines are not affected.
    """

    # The class to evaluate expressions with
    _EXPRESSION_EVALUATOR_CLS = ExpressionEvaluator

    # Handlers that stages are based on: they receive their settings from here
    _HANDLERS = (
        ('filter', MongoFilter),
        ('sort', MongoSort),
        ('limit', MongoLimit),
        ('project', MongoProject),
        ('count', MongoCount),
    )

    def __init__(self, collection_name, store=None, handler_settings=None):
        """ Init a pipeline

        :param collection_name: Name of the collection the pipeline runs on. Used in error messages.
        :param store: The store to resolve `$lookup` collections with
        :type store: mongomem.store.DocumentStore | None
        :param handler_settings: Collection settings.
        :type handler_settings: dict | CollectionSettingsDict | None
        """
        self.collection_name = collection_name
        self.store = store
        self.expression_evaluator = self._EXPRESSION_EVALUATOR_CLS()

        # Settings
        self._handler_settings = MongoQuerySettingsHandler(handler_settings or {})
        self._settings = {name: self._handler_settings.get_settings(name, handler_cls)
                          for name, handler_cls in self._HANDLERS}
        self._handler_settings.raise_if_invalid_handler_settings(self)

        # Filter that's applied to the input
        self._force_filter = None
        if self._settings['filter']['force_filter']:
            self._force_filter = self.make_handler('filter', MongoFilter).input(None)

        # On input
        self.stages = None  # type: list[StageBase]

    def __copy__(self):
        """ Make a pipeline reusable: wrap it with Reusable() """
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)
        return result

    def make_handler(self, handler_name, handler_cls, **overrides):
        """ Init a Query Object handler for a stage, with the settings of this pipeline

        :param overrides: Settings to replace
        :rtype: mongomem.handlers.MongoQueryHandlerBase
        """
        kwargs = dict(self._settings[handler_name], **overrides)
        return handler_cls(self.collection_name, **kwargs)

    def input(self, pipeline):
        """ Parse the pipeline

        :param pipeline: List of stages
        :type pipeline: list[dict]
        :rtype: MongoPipeline
        :raises ValidationError: malformed pipeline
        :raises DisabledError: a stage is disabled by settings
        :raises InvalidCollectionError: $lookup from a collection that does not exist
        """
        if not isinstance(pipeline, (list, tuple)):
            raise ValidationError('pipeline must be a list of stages, {} given'.format(type(pipeline).__name__))

        self.stages = [self._parse_stage(i, stage) for i, stage in enumerate(pipeline)]
        return self

    def _parse_stage(self, index, stage):
        """ Parse a single { $stage: argument } object """
        if not isinstance(stage, dict) or len(stage) != 1:
            raise ValidationError('pipeline stage #{}: must be an object with exactly one key, {!r} given'
                                  .format(index, stage))

        stage_name, argument = next(iter(stage.items()))
        try:
            stage_cls = STAGES[stage_name]
        except KeyError:
            raise ValidationError('pipeline stage #{}: unsupported stage "{}"'.format(index, stage_name))

        if stage_cls.handler_name:
            self._handler_settings.raise_if_not_handler_enabled(self.collection_name, stage_cls.handler_name)

        return stage_cls(self, index, argument)

    def end(self, documents, snapshot=None):
        """ Run the pipeline

        :param documents: The input documents. They are never modified; however, the results may share values
            with them. Give it copies if you intend to modify the results.
        :type documents: Iterable[dict]
        :param snapshot: The store snapshot to read `$lookup` collections from. Default: take a new one
        :type snapshot: mongomem.store.Snapshot | None
        :rtype: list[dict]
        :raises TypeMismatchError: values of incompatible kinds were compared or used in arithmetic
        :raises DivisionByZeroError: $divide or $mod by zero
        """
        assert self.stages is not None, 'Call input() first'

        if snapshot is None and self.store is not None:
            snapshot = self.store.snapshot()

        documents = list(documents)
        if self._force_filter is not None:
            documents = self._force_filter.apply(documents)

        for stage in self.stages:
            documents = stage.apply(documents, snapshot)
            logger.debug('%s: %s stage #%d produced %d documents',
                         self.collection_name, stage.stage_name, stage.index, len(documents))

        return documents

    def __repr__(self):
        return 'MongoPipeline({!r})'.format(self.collection_name)


__all__ = ('MongoPipeline',)
