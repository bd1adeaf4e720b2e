
class BaseMongoMemException(Exception):
    pass


class ValidationError(BaseMongoMemException):
    """ Invalid input provided by the User: a malformed filter, projection, pipeline, or expression """

    def __init__(self, err: str):
        self.err = err
        super(ValidationError, self).__init__('Query object error: {err}'.format(err=err))


class DisabledError(ValidationError):
    """ The feature is disabled """


class InvalidCollectionError(ValidationError):
    """ Query mentioned a collection that does not exist """

    def __init__(self, collection_name: str, where: str):
        self.collection_name = collection_name
        self.where = where

        super(InvalidCollectionError, self).__init__(
            'Invalid collection "{collection_name}" specified in {where}'.format(
                collection_name=collection_name,
                where=where)
        )


class DuplicateKeyError(BaseMongoMemException):
    """ Insert with an `_id` that already exists in the collection """

    def __init__(self, collection_name: str, id):
        self.collection_name = collection_name
        self.id = id

        super(DuplicateKeyError, self).__init__(
            'Duplicate key: _id={id!r} already exists in "{collection_name}"'.format(
                id=id,
                collection_name=collection_name)
        )


class TypeMismatchError(BaseMongoMemException):
    """ Values of incompatible kinds were compared, or used in arithmetic """

    def __init__(self, operator: str, *operands):
        self.operator = operator
        self.operands = operands

        super(TypeMismatchError, self).__init__(
            'Cannot apply {operator} to {types}: {values}'.format(
                operator=operator,
                types=' and '.join(type(v).__name__ for v in operands),
                values=', '.join(repr(v) for v in operands))
        )


class DivisionByZeroError(BaseMongoMemException):
    """ $divide or $mod by zero without a $cond guard """

    def __init__(self, operator: str, dividend):
        self.operator = operator
        self.dividend = dividend

        super(DivisionByZeroError, self).__init__(
            '{operator}: cannot divide {dividend!r} by zero'.format(
                operator=operator,
                dividend=dividend)
        )


__all__ = (
    'BaseMongoMemException',
    'ValidationError',
    'DisabledError',
    'InvalidCollectionError',
    'DuplicateKeyError',
    'TypeMismatchError',
    'DivisionByZeroError',
)
