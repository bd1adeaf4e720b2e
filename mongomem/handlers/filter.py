"""
### Filter Operation
Filtering selects the documents that satisfy a condition.

Example of filtering:

```python
posts.find({
    # all conditions are AND-ed together
    'hashtags': '#mongodb',  # the array contains "#mongodb"
    'created_at': {'$gte': datetime(2024, 1, 1)},  # created this year
})
```

#### Field Operators
The following [MongoDB query operators](https://docs.mongodb.com/manual/reference/operator/query/)
are supported:

* `{ a: 1 }` - equality check: `field = value`. This is a shortcut for the `$eq` operator.
    `{ a: None }` matches both `null` and missing fields.
* `{ a: { $eq: 1 } }` - equality check: `field = value` (alias).
* `{ a: { $ne: 1 } }` - inequality check: `field != value`.
* `{ a: { $lt: 1 } }`  - less than: `field < value`
* `{ a: { $lte: 1 } }` - less or equal than: `field <= value`
* `{ a: { $gt: 1 } }`  - greater than: `field > value`
* `{ a: { $gte: 1 } }` - greater or equal than: `field >= value`
* `{ a: { $in: [...] } }` - any of. Field is equal to any of the given array of values.
* `{ a: { $nin: [...] } }` - none of. Field is not equal to any of the given array of values.
* `{ a: { $exists: true } }` - the field is present (even when it's `null`).
* `{ a: { $regex: '^user' } }` - the string field matches a regular expression.
    Add `$options: 'i'` for case-insensitive matching. A compiled `re.Pattern` is accepted too.

Ordering operators ($lt, $lte, $gt, $gte) only compare values of the same kind:
numbers with numbers, strings with strings, timestamps with timestamps.
Comparing a string to a number raises a `TypeMismatchError`.
A missing or `null` field never satisfies an ordering operator.

Operators on an array field:

* `{ arr: 1 }`  - containment check: the array contains the given value (or equals it, for an array value).
* `{ arr: { $ne: 1 } }` - non-containment check: no element equals the value.
* `{ arr: { $in: [...] } }` - intersection check. The two arrays have common elements.
* `{ arr: { $nin: [...] } }` - no intersection check.
* `{ arr: { $all: [...] } }` - contains all values from the given array
* `{ arr: { $size: 0 } }` - has a length of N (zero, to check for an empty array)
* `{ arr: { $gt: 1 } }` - any element is greater than the value

#### Boolean Operators

* `{ $or: [ {..criteria..}, .. ] }`  - any is true
* `{ $and: [ {..criteria..}, .. ] }` - all are true
* `{ $nor: [ {..criteria..}, .. ] }` - none is true
* `{ $not: { ..criteria.. } }` - negation

Example usage:

```python
posts.find({
    '$or': [
        {'metrics.likes': {'$gte': 5}},
        {'metrics.comments': {'$gte': 3}},
    ]
})
```

#### Nested fields
Nested documents are addressed with the dot-notation: `'metrics.likes'`.
When a parent is missing, the field is missing: no error is raised.
A numeric part of the path indexes into an array: `'hashtags.0'`.
"""

import re

from .base import MongoQueryHandlerBase
from ..document import ABSENT, is_array, is_number, values_equal, compare_values, get_path
from ..exc import ValidationError


# region Operators

# Every operator is a `lambda value, argument`, where `value` is the field value, possibly ABSENT

def _op_eq(val, arg):
    # `None` matches both null and missing fields
    if arg is None:
        return val is None or val is ABSENT or (is_array(val) and any(v is None for v in val))
    # Exact match: scalars, or the whole array
    if values_equal(val, arg):
        return True
    # Array field: any element
    return is_array(val) and any(values_equal(v, arg) for v in val)


def _op_in(val, arg):
    return any(_op_eq(val, a) for a in arg)


def _op_all(val, arg):
    return is_array(val) and all(any(values_equal(v, a) for v in val) for a in arg)


def _op_regex(val, pattern):
    if isinstance(val, str):
        return pattern.search(val) is not None
    if is_array(val):
        return any(isinstance(v, str) and pattern.search(v) is not None for v in val)
    return False  # not a string: never matches


def _ordering_operator(operator_str):
    """ Make an implementation for $gt, $gte, $lt, $lte """
    def op(val, arg):
        # Array field: any element
        if is_array(val) and not is_array(arg):
            return any(compare_values(operator_str, v, arg) for v in val)
        return compare_values(operator_str, val, arg)
    return op

# endregion


# region Filter Expression Classes

class FilterExpressionBase:
    """ An expression from the filter object """

    __slots__ = ('operator_str', 'value')

    def __init__(self, operator_str, value):
        self.operator_str = operator_str
        self.value = value

    def matches(self, doc):
        """ Test the expression against a document

        :type doc: dict
        :rtype: bool
        """
        raise NotImplementedError()

    @staticmethod
    def all_match(expressions, doc):
        """ Take a list of expressions and AND them together

            In a few places in the code, we keep conditions in a list without wrapping them
            explicitly into a boolean expression: just to keep it simple, easy to go through.
        """
        return all(e.matches(doc) for e in expressions)


class FilterBooleanExpression(FilterExpressionBase):
    """ A boolean expression.

        Consists of: an operator ($and, etc), and a value:
        list[list[FilterExpressionBase]] for $and, $or, $nor;
        list[FilterExpressionBase] for $not
    """

    def __repr__(self):
        return '({}: {})'.format(self.operator_str, self.value)

    def matches(self, doc):
        if self.operator_str == '$not':
            return not self.all_match(self.value, doc)

        # Every item of the list is a sub-filter: a list of expressions ANDed together
        results = (self.all_match(criteria, doc) for criteria in self.value)

        if self.operator_str == '$or':
            return any(results)
        elif self.operator_str == '$nor':
            return not any(results)
        elif self.operator_str == '$and':
            return all(results)
        else:
            raise NotImplementedError('Unknown operator: {}'.format(self.operator_str))


class FilterFieldExpression(FilterExpressionBase):
    """ An expression involving a field

        Consists of: an operator ($eq, etc), a field, and a value to compare the field to
    """

    __slots__ = ('field_name', 'operator_lambda')

    def __init__(self, field_name, operator_str, operator_lambda, value):
        """ Init a field expression

        :param field_name: Name of the field referenced (possibly, with dots!)
        :param operator_str: The operator to use, e.g. $eq
        :param operator_lambda: A callable that implements the operator: `lambda value, argument`
        :param value: The value the operator is applied to
        """
        super(FilterFieldExpression, self).__init__(operator_str, value)
        self.field_name = field_name
        self.operator_lambda = operator_lambda

    def __repr__(self):
        return '{} {} {!r}'.format(self.field_name, self.operator_str, self.value)

    def matches(self, doc):
        return self.operator_lambda(get_path(doc, self.field_name), self.value)

# endregion


class MongoFilter(MongoQueryHandlerBase):
    """ MongoDB filter expression.

        This is used by `find()`, and by the `$match` pipeline stage.
        The filter object is parsed once, by input(); matches() then tests documents against it.
    """

    query_object_section_name = 'filter'

    def __init__(self, collection_name, force_filter=None, scalar_operators=None):
        """ Init a filter expression

        :param collection_name: Collection to work with
        :param force_filter: A filtering condition that will be forcefully applied to the query.
            A dict, which will become ANDed to every request.
        :param scalar_operators: A dict of additional operators to recognize.
            A mapping: {'$operator': lambda value, argument}. See class body for examples.
        :type scalar_operators: dict[str, lambda]
        """
        # Parent
        super(MongoFilter, self).__init__(collection_name)

        # On input
        self.expressions = None

        # Extra configuration
        self._extra_scalar_ops = scalar_operators or {}

        # Extra configuration: force_filter
        if force_filter is None:
            self.force_filter = None
        elif isinstance(force_filter, dict):
            # When a dict, store it, and validate it
            self.force_filter = force_filter
            self._parse_criteria(self.force_filter)  # validate force_filter
        else:
            raise ValueError(force_filter)

    # Supported operators
    _operators_scalar = {
        # operator => lambda value, argument
        '$eq':  _op_eq,
        '$ne':  lambda val, arg: not _op_eq(val, arg),
        '$lt':  _ordering_operator('$lt'),
        '$lte': _ordering_operator('$lte'),
        '$gt':  _ordering_operator('$gt'),
        '$gte': _ordering_operator('$gte'),
        '$in':  _op_in,
        '$nin': lambda val, arg: not _op_in(val, arg),
        '$all': _op_all,
        '$exists': lambda val, arg: (val is not ABSENT) == arg,
        '$size': lambda val, arg: is_array(val) and len(val) == arg,
        '$regex': _op_regex,
    }

    # List of operators that always require array argument
    _operators_require_array_value = frozenset(('$all', '$in', '$nin'))

    # List of boolean operators, handled by a separate method
    _boolean_operators = frozenset(('$and', '$or', '$nor', '$not'))

    # Regex flags for $options
    _regex_options = {'i': re.IGNORECASE, 'm': re.MULTILINE, 's': re.DOTALL, 'x': re.VERBOSE}

    # These classes implement matching
    # You can override them, if necessary
    _FIELD_EXPRESSION_CLS = FilterFieldExpression
    _BOOLEAN_EXPRESSION_CLS = FilterBooleanExpression

    def input(self, criteria):
        # Process input
        super(MongoFilter, self).input(criteria)
        self.expressions = self._parse_criteria(criteria)

        # Apply force_filter
        # Parse it, add it (because the results will be ANDed together anyway)
        if self.force_filter:
            self.expressions.extend(self._parse_criteria(self.force_filter))

        return self

    def _parse_criteria(self, criteria):
        """ Parse a filter object and return a list of parsed objects.

        :type criteria: dict | None
        :rtype: list[FilterExpressionBase]
        """
        # None
        if not criteria:
            criteria = {}

        # Validation base
        if not isinstance(criteria, dict):
            self._raise('criteria must be one of: null, object')

        # Transform the boolean expression into a list of conditions
        # In the end, those will be ANDed together
        expressions = []

        # Assuming a dict of mixed { field: value }s and  { field: { $op: value } }s
        for key, criteria in criteria.items():
            # Boolean expressions? ($op: value}
            if key in self._boolean_operators:
                boolean_expression = self._parse_boolean_operator(key, criteria)
                if boolean_expression is not None:
                    expressions.append(boolean_expression)
                continue  # nothing else to do here

            # Alright, now we're handling a field, not a boolean expression
            field_name = key
            if not isinstance(field_name, str) or not field_name:
                self._raise('field names must be non-empty strings, got {!r}', field_name)
            if field_name.startswith('$'):
                self._raise('unsupported operator "{}"', field_name)

            # Fake equality
            # The shorthand syntax ({name: "Kevin"}) is transformed into {name: {$eq: Kevin}}
            # so that we don't have to implement special cases.
            # A dict without operators is an equality check with an object: { metrics: {likes: 0} }
            if not self._is_operator_object(field_name, criteria):
                criteria = {'$eq': criteria}  # fake the missing equality operator for simplicity

            # At this point, we have a field, and a dict of multiple criteria.
            # It looks like this:
            # { age: { $gt: 18, $lt: 25 } }
            # Now we got to go through this criteria object, and apply every operator to the field.
            expressions.extend(self._parse_field_operators(field_name, criteria))

        # Done
        return expressions

    @staticmethod
    def _is_operator_object(field_name, criteria):
        """ Tell an object of operators { $gt: 1 } from an object value { likes: 1 } """
        if not isinstance(criteria, dict) or not criteria:
            return False
        if not all(isinstance(k, str) for k in criteria):
            raise ValidationError('filter: keys in the criteria for `{}` must be strings'.format(field_name))
        operator_keys = [k.startswith('$') for k in criteria.keys()]
        if all(operator_keys):
            return True
        if any(operator_keys):
            raise ValidationError('filter: cannot mix operators and fields in the criteria for `{}`'
                                  .format(field_name))
        return False

    def _parse_field_operators(self, field_name, criteria):
        """ Parse { $op: value, ... } for a single field """
        # $options only go along with $regex
        criteria = dict(criteria)
        regex_options = criteria.pop('$options', None)
        if regex_options is not None and '$regex' not in criteria:
            self._raise('$options without $regex for field `{}`', field_name)

        for operator, value in criteria.items():
            # Operator lookup
            try:
                operator_lambda = self._lookup_operator(operator)
            except KeyError:
                raise ValidationError('Unsupported operator "{}" found in filter for field `{}`'
                                      .format(operator, field_name))

            # Validate operator argument
            if operator in self._operators_require_array_value and not is_array(value):
                self._raise('{} argument must be an array for field `{}`', operator, field_name)
            if operator == '$size' and not (is_number(value) and int(value) == value and value >= 0):
                self._raise('$size argument must be a non-negative integer for field `{}`', field_name)
            if operator == '$exists':
                value = bool(value)
            if operator == '$regex':
                value = self._compile_regex(field_name, value, regex_options)

            yield self._FIELD_EXPRESSION_CLS(field_name, operator, operator_lambda, value)

    def _compile_regex(self, field_name, pattern, options):
        """ Compile a $regex argument """
        flags = 0
        for option in options or '':
            try:
                flags |= self._regex_options[option]
            except KeyError:
                self._raise('unsupported $options flag "{}" for field `{}`', option, field_name)

        if isinstance(pattern, re.Pattern):
            return re.compile(pattern.pattern, pattern.flags | flags) if flags else pattern
        if not isinstance(pattern, str):
            self._raise('$regex argument must be a string for field `{}`', field_name)
        try:
            return re.compile(pattern, flags)
        except re.error as e:
            raise ValidationError('filter: invalid $regex for field `{}`: {}'.format(field_name, e))

    def _parse_boolean_operator(self, op, criteria):
        """ Used in _parse_criteria() to handle boolean operators from self._boolean_operators

            Example:
                Input: { $and: [ {}, ... ] }
                -> _parse_boolean_operator('$and', [ {}, ... ])
        """
        if op == '$not':
            # This operator accepts a dict (not a list), which is a filter object itself.
            if not isinstance(criteria, dict):
                self._raise('$not argument must be an object')

            # Recurse
            criterion = self._parse_criteria(criteria)

            # Done
            return self._BOOLEAN_EXPRESSION_CLS(op, criterion)
        else:
            # All other operators accept a list: $and, $or, $nor
            if not isinstance(criteria, (list, tuple)):
                self._raise('{} argument must be a list', op)

            # Because the argument of a boolean expression is always a list of other filter objects,
            # we have to recurse here and parse it.
            # Example: { $or: [ {..}, {..}, {..} ]}
            #   will have to call _parse_criteria() for every object within: recursion
            for s in criteria:
                if not isinstance(s, dict):
                    self._raise('{} argument must be a list of objects', op)
            criteria = [self._parse_criteria(s) for s in criteria]  # type criteria: list[list[FilterExpressionBase]]

            # Done
            if len(criteria) == 0:
                self._raise('{} argument must be a non-empty list', op)
            return self._BOOLEAN_EXPRESSION_CLS(op, criteria)

    def _lookup_operator(self, operator):
        """ Lookup an operator in `self`, or extra operators

        :param operator: Operator string
        :return: lambda
        :raises: KeyError
        """
        return self._operators_scalar.get(operator) or self._extra_scalar_ops[operator]

    def matches(self, doc):
        """ Test whether a document satisfies the filter

        :type doc: dict
        :rtype: bool
        :raises TypeMismatchError: an ordering operator compared values of different kinds
        """
        return FilterExpressionBase.all_match(self.expressions, doc)

    def apply(self, documents):
        # Only go through the documents when there is a condition
        if not self.expressions:
            return list(documents)
        return [doc for doc in documents if self.matches(doc)]
