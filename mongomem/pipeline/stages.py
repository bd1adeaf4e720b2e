from collections import OrderedDict
from copy import deepcopy

from ..document import ABSENT, get_path, with_path, without_path, is_array, freeze
from ..exc import ValidationError, InvalidCollectionError
from ..handlers import MongoFilter, MongoSort, MongoLimit, MongoProject
from .accumulators import ACCUMULATORS


class StageBase:
    """ A pipeline stage

        A stage is parsed once, when the pipeline is built: __init__() validates its argument.
        Then, apply() can be used any number of times.
        Stages never modify the documents they are given: they produce new ones.
    """

    #: The name of the stage, e.g. '$match'
    stage_name = None

    #: The name of the Query Object handler that this stage is based on. Disabling the handler disables the stage.
    handler_name = None

    def __init__(self, pipeline, index, argument):
        """ Parse the stage

        :param pipeline: The pipeline this stage belongs to
        :type pipeline: mongomem.pipeline.MongoPipeline
        :param index: The position of this stage in the pipeline. Used in error messages.
        :param argument: The stage argument
        :raises ValidationError
        """
        self.pipeline = pipeline
        self.index = index
        self.argument = argument

    def __repr__(self):
        return '{{{}: {!r}}}'.format(self.stage_name, self.argument)

    def _raise(self, message, *args):
        """ Raise a ValidationError that mentions the stage """
        raise ValidationError('pipeline stage #{} ({}): {}'.format(self.index, self.stage_name, message.format(*args)))

    def _field_path(self, value, what):
        """ Validate a '$field' reference, return the path """
        if not isinstance(value, str) or not value.startswith('$') or value.startswith('$$') or len(value) < 2:
            self._raise('{} must be a field path starting with "$", {!r} given', what, value)
        return value[1:]

    def apply(self, documents, snapshot):
        """ Apply the stage to documents

        :param documents: The output of the previous stage
        :type documents: list[dict]
        :param snapshot: The store snapshot that the pipeline runs against
        :type snapshot: mongomem.store.Snapshot | None
        :rtype: list[dict]
        """
        raise NotImplementedError()


class MatchStage(StageBase):
    """ $match: keep the documents that match a filter """

    stage_name = '$match'
    handler_name = 'filter'

    def __init__(self, pipeline, index, argument):
        super(MatchStage, self).__init__(pipeline, index, argument)
        if not isinstance(argument, dict):
            self._raise('must be a filter object')
        self.filter = pipeline.make_handler('filter', MongoFilter, force_filter=None).input(argument)

    def apply(self, documents, snapshot):
        return self.filter.apply(documents)


class UnwindStage(StageBase):
    """ $unwind: one output document for every element of an array

        * '$field'
        * { path: '$field', preserveNullAndEmptyArrays: False, includeArrayIndex: None }
    """

    stage_name = '$unwind'

    def __init__(self, pipeline, index, argument):
        super(UnwindStage, self).__init__(pipeline, index, argument)

        if isinstance(argument, str):
            argument = {'path': argument}
        if not isinstance(argument, dict):
            self._raise('must be either a field path, or an object')

        unknown_keys = set(argument) - {'path', 'preserveNullAndEmptyArrays', 'includeArrayIndex'}
        if unknown_keys:
            self._raise('unknown options: {}', ', '.join(sorted(unknown_keys)))

        self.path = self._field_path(argument.get('path'), 'path')
        self.preserve_null_and_empty = argument.get('preserveNullAndEmptyArrays', False)
        if not isinstance(self.preserve_null_and_empty, bool):
            self._raise('preserveNullAndEmptyArrays must be a boolean')
        self.include_array_index = argument.get('includeArrayIndex', None)
        if self.include_array_index is not None and (not isinstance(self.include_array_index, str)
                                                     or not self.include_array_index
                                                     or self.include_array_index.startswith('$')):
            self._raise('includeArrayIndex must be a field name')

    def _emit(self, doc, value, index):
        doc = with_path(doc, self.path, value)
        if self.include_array_index:
            doc = with_path(doc, self.include_array_index, index)
        return doc

    def apply(self, documents, snapshot):
        ret = []
        for doc in documents:
            value = get_path(doc, self.path)

            # Arrays: one document per element
            if is_array(value) and value:
                ret.extend(self._emit(doc, element, i) for i, element in enumerate(value))
            # Null, missing, empty arrays: dropped, unless preserved
            elif value is None or value is ABSENT or is_array(value):
                if self.preserve_null_and_empty:
                    # An empty array is removed, like MongoDB does it
                    if is_array(value):
                        doc = without_path(doc, self.path)
                    if self.include_array_index:
                        doc = with_path(doc, self.include_array_index, None)
                    ret.append(doc)
            # Scalars are treated as a single-element array
            else:
                ret.append(self._emit(doc, value, None))
        return ret


class GroupStage(StageBase):
    """ $group: { _id: <key expression>, label: { $accumulator: <expression> }, ... } """

    stage_name = '$group'

    def __init__(self, pipeline, index, argument):
        super(GroupStage, self).__init__(pipeline, index, argument)

        if not isinstance(argument, dict) or '_id' not in argument:
            self._raise('must be an object with the "_id" key')

        evaluator = pipeline.expression_evaluator
        self.key = evaluator.compile(argument['_id'])

        self.accumulators = []
        for label, spec in argument.items():
            if label == '_id':
                continue
            if not isinstance(label, str) or not label or '.' in label or label.startswith('$'):
                self._raise('invalid field name: {!r}', label)
            if not isinstance(spec, dict) or len(spec) != 1:
                self._raise('the "{}" field must be an accumulator object: {{"$accumulator": <expression>}}', label)

            operator_str, operand = next(iter(spec.items()))
            try:
                accumulator_cls = ACCUMULATORS[operator_str]
            except KeyError:
                self._raise('unsupported accumulator "{}" for field "{}"', operator_str, label)
            accumulator_cls.validate_argument(operand)
            self.accumulators.append(accumulator_cls(label, evaluator.compile(operand)))

    def apply(self, documents, snapshot):
        # frozen key => (key, [state, ...])
        groups = OrderedDict()
        for doc in documents:
            key = self.key.evaluate(doc)
            if key is ABSENT:
                key = None

            frozen = freeze(key)
            if frozen not in groups:
                groups[frozen] = (key, [acc.start() for acc in self.accumulators])
            states = groups[frozen][1]

            for i, acc in enumerate(self.accumulators):
                states[i] = acc.add(states[i], doc)

        # Output
        ret = []
        for key, states in groups.values():
            out = {'_id': key}
            for acc, state in zip(self.accumulators, states):
                out[acc.label] = acc.finish(state)
            ret.append(out)
        return ret


class SortStage(StageBase):
    """ $sort: { field: 1 | -1, ... } """

    stage_name = '$sort'
    handler_name = 'sort'

    def __init__(self, pipeline, index, argument):
        super(SortStage, self).__init__(pipeline, index, argument)
        if not argument:
            self._raise('must have at least one sort key')
        self.sort = pipeline.make_handler('sort', MongoSort).input(argument)

    def apply(self, documents, snapshot):
        return self.sort.apply(documents)


class LimitStage(StageBase):
    """ $limit: n """

    stage_name = '$limit'
    handler_name = 'limit'

    #: The MongoLimit.input() argument that receives the value
    _limit_kwarg = 'limit'

    def __init__(self, pipeline, index, argument):
        super(LimitStage, self).__init__(pipeline, index, argument)
        if argument is None:
            self._raise('must be a non-negative integer')
        self.limit = pipeline.make_handler('limit', MongoLimit, max_items=None).input(**{self._limit_kwarg: argument})

    def apply(self, documents, snapshot):
        return self.limit.apply(documents)


class SkipStage(LimitStage):
    """ $skip: n """

    stage_name = '$skip'
    _limit_kwarg = 'skip'


class ProjectStage(StageBase):
    """ $project: { field: 1 | 0 | <expression>, ... } """

    stage_name = '$project'
    handler_name = 'project'

    def __init__(self, pipeline, index, argument):
        super(ProjectStage, self).__init__(pipeline, index, argument)
        if not isinstance(argument, dict) or not argument:
            self._raise('must be a non-empty object')
        self.project = pipeline.make_handler('project', MongoProject, force_exclude=None).input(argument)

    def apply(self, documents, snapshot):
        return self.project.apply(documents)


class AddFieldsStage(StageBase):
    """ $addFields: { field: <expression>, ... }

        Every expression is evaluated against the input document, then all fields are set.
        A computed value that is missing does not get into the result.
    """

    stage_name = '$addFields'

    def __init__(self, pipeline, index, argument):
        super(AddFieldsStage, self).__init__(pipeline, index, argument)
        if not isinstance(argument, dict) or not argument:
            self._raise('must be a non-empty object')
        for name in argument:
            if not isinstance(name, str) or not name or name.startswith('$') or '..' in name:
                self._raise('invalid field name: {!r}', name)

        evaluator = pipeline.expression_evaluator
        self.fields = [(name, evaluator.compile(expr))
                       for name, expr in argument.items()]

    def apply(self, documents, snapshot):
        ret = []
        for doc in documents:
            values = [(name, expr.evaluate(doc)) for name, expr in self.fields]
            for name, value in values:
                if value is not ABSENT:
                    doc = with_path(doc, name, value)
            ret.append(doc)
        return ret


class SetStage(AddFieldsStage):
    """ $set: an alias for $addFields """

    stage_name = '$set'


class LookupStage(StageBase):
    """ $lookup: { from, localField, foreignField, as }

        Attaches the documents from another collection, whose `foreignField` equals the `localField`.
        The other collection is read from the same snapshot as the pipeline's input.
    """

    stage_name = '$lookup'

    def __init__(self, pipeline, index, argument):
        super(LookupStage, self).__init__(pipeline, index, argument)

        if not isinstance(argument, dict):
            self._raise('must be an object')
        missing_keys = {'from', 'localField', 'foreignField', 'as'} - set(argument)
        if missing_keys:
            self._raise('missing keys: {}', ', '.join(sorted(missing_keys)))
        unknown_keys = set(argument) - {'from', 'localField', 'foreignField', 'as'}
        if unknown_keys:
            self._raise('unsupported keys: {}', ', '.join(sorted(unknown_keys)))

        for key in ('localField', 'foreignField', 'as'):
            if not isinstance(argument[key], str) or not argument[key] or argument[key].startswith('$'):
                self._raise('{} must be a field name', key)

        self.from_collection = self._resolve_collection(argument['from'])
        self.local_field = argument['localField']
        self.foreign_field = argument['foreignField']
        self.as_field = argument['as']

    def _resolve_collection(self, target):
        """ Get the name of the collection to join; make sure it exists """
        store = self.pipeline.store

        # Collection handle
        name = getattr(target, 'name', target)
        if not isinstance(name, str):
            self._raise('"from" must be a collection, or a collection name; {!r} given', target)
        if store is None:
            store = getattr(target, 'store', None)
            self.pipeline.store = store
        if store is None or name not in store:
            raise InvalidCollectionError(name, '$lookup')
        if hasattr(target, 'store') and target.store is not store:
            self._raise('collection "{}" belongs to a different store', name)
        return name

    @staticmethod
    def _keys(value):
        """ Get the keys to match a value by: the value itself, and every element of an array """
        keys = [freeze(value)]
        if is_array(value):
            keys.extend(freeze(v) for v in value)
        return keys

    def apply(self, documents, snapshot):
        foreign_docs = snapshot.documents(self.from_collection) if snapshot is not None else []

        # Index the foreign collection: key => [doc index, ...]
        index = {}
        for i, foreign_doc in enumerate(foreign_docs):
            for key in set(self._keys(get_path(foreign_doc, self.foreign_field))):
                index.setdefault(key, []).append(i)

        # Join
        ret = []
        for doc in documents:
            matches = set()
            for key in self._keys(get_path(doc, self.local_field)):
                matches.update(index.get(key, ()))
            joined = [deepcopy(foreign_docs[i]) for i in sorted(matches)]
            ret.append(with_path(doc, self.as_field, joined))
        return ret


class CountStage(StageBase):
    """ $count: 'field name' """

    stage_name = '$count'
    handler_name = 'count'

    def __init__(self, pipeline, index, argument):
        super(CountStage, self).__init__(pipeline, index, argument)
        if not isinstance(argument, str) or not argument or argument.startswith('$') or '.' in argument:
            self._raise('must be a field name')
        self.field = argument

    def apply(self, documents, snapshot):
        if not documents:
            return []
        return [{self.field: len(documents)}]


#: All stages, by name
STAGES = {cls.stage_name: cls
          for cls in (MatchStage, UnwindStage, GroupStage, SortStage, LimitStage, SkipStage,
                      ProjectStage, AddFieldsStage, SetStage, LookupStage, CountStage)}
