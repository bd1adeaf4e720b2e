"""
### Group Accumulators

Accumulators compute a value over all documents of a group.
Every accumulator is given as `{ label: { $accumulator: <expression> } }`:

```python
{'$group': {
    '_id': '$user_id',
    'posts': {'$sum': 1},  # count
    'likes': {'$sum': '$metrics.likes'},  # total
    'best': {'$max': '$metrics.likes'},
    'tags': {'$addToSet': '$hashtags'},
}}
```

* `$sum`: the sum of numeric values. Anything that's not a number is ignored. `{'$sum': 1}` counts documents.
* `$avg`: the average of numeric values; `None` when there are none.
* `$min`, `$max`: the smallest and the largest value. `null` and missing values are ignored.
    Values of different kinds are ordered the same way `$sort` orders them.
* `$push`: the list of all values
* `$addToSet`: the list of unique values, in the order of first appearance
* `$first`, `$last`: the value from the first and the last document of the group
* `$count`: the number of documents. Takes no argument: `{'$count': {}}`
"""

from ..document import ABSENT, is_number, sort_key, freeze
from ..exc import ValidationError


class AccumulatorBase:
    """ An accumulator for the $group stage

        The accumulator object itself is stateless: it's shared between groups.
        Every group has its own state: start() creates it, add() updates it, and finish() gives the result.
    """

    __slots__ = ('label', 'expression')

    #: The operator that this class implements
    operator_str = None

    def __init__(self, label, expression):
        """ Init an accumulator

        :param label: The name of the output field
        :type label: str
        :param expression: The expression to evaluate for every document
        :type expression: mongomem.expressions.ExpressionBase
        """
        self.label = label
        self.expression = expression

    def __repr__(self):
        return '{}: {{{}: {!r}}}'.format(self.label, self.operator_str, self.expression)

    @classmethod
    def validate_argument(cls, argument):
        """ Validate the argument before it's compiled """

    def start(self):
        """ Get the initial state """
        return None

    def add(self, state, doc):
        """ Add a document to the state, return the new state """
        return self.add_value(state, self.expression.evaluate(doc))

    def add_value(self, state, value):
        raise NotImplementedError()

    def finish(self, state):
        """ Get the final value from the state """
        return state


class SumAccumulator(AccumulatorBase):
    __slots__ = ()
    operator_str = '$sum'

    def start(self):
        return 0

    def add_value(self, state, value):
        if is_number(value):
            return state + value
        return state


class AvgAccumulator(AccumulatorBase):
    __slots__ = ()
    operator_str = '$avg'

    def start(self):
        return (0, 0)  # (total, count)

    def add_value(self, state, value):
        if is_number(value):
            total, count = state
            return (total + value, count + 1)
        return state

    def finish(self, state):
        total, count = state
        return total / count if count else None


class MinAccumulator(AccumulatorBase):
    __slots__ = ()
    operator_str = '$min'

    def _better(self, value, than):
        return sort_key(value) < sort_key(than)

    def add_value(self, state, value):
        if value is None or value is ABSENT:
            return state
        if state is None or self._better(value, state):
            return value
        return state


class MaxAccumulator(MinAccumulator):
    __slots__ = ()
    operator_str = '$max'

    def _better(self, value, than):
        return sort_key(value) > sort_key(than)


class PushAccumulator(AccumulatorBase):
    __slots__ = ()
    operator_str = '$push'

    def start(self):
        return []

    def add_value(self, state, value):
        if value is not ABSENT:
            state.append(value)
        return state


class AddToSetAccumulator(AccumulatorBase):
    __slots__ = ()
    operator_str = '$addToSet'

    def start(self):
        return {}  # frozen value => value

    def add_value(self, state, value):
        if value is not ABSENT:
            state.setdefault(freeze(value), value)
        return state

    def finish(self, state):
        return list(state.values())


class FirstAccumulator(AccumulatorBase):
    __slots__ = ()
    operator_str = '$first'

    def start(self):
        return ABSENT

    def add_value(self, state, value):
        if state is ABSENT:
            return None if value is ABSENT else value
        return state


class LastAccumulator(AccumulatorBase):
    __slots__ = ()
    operator_str = '$last'

    def add_value(self, state, value):
        return None if value is ABSENT else value


class CountAccumulator(AccumulatorBase):
    __slots__ = ()
    operator_str = '$count'

    @classmethod
    def validate_argument(cls, argument):
        if argument != {}:
            raise ValidationError('$count accumulator takes no arguments: use {"$count": {}}')

    def start(self):
        return 0

    def add(self, state, doc):
        return state + 1


#: All accumulators, by operator
ACCUMULATORS = {cls.operator_str: cls
                for cls in (SumAccumulator, AvgAccumulator, MinAccumulator, MaxAccumulator,
                            PushAccumulator, AddToSetAccumulator, FirstAccumulator, LastAccumulator,
                            CountAccumulator)}
