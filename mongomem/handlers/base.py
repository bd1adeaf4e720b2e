from ..exc import ValidationError


class MongoQueryHandlerBase:
    """ Base for the handlers of a Query Object section: filter, project, sort, limit, count, update

        A handler lives in three steps:

        1. __init__(): the collection name and the settings. Nothing is parsed yet, so a configured
           handler can be kept around and copied (see: Reusable)
        2. input(): parse and validate the section. Only once per object.
        3. apply(): run it on a list of documents
    """

    #: The Query Object key this handler takes care of. Also used in error messages.
    query_object_section_name = None

    def __init__(self, collection_name):
        """ Init a handler

        :param collection_name: The collection the handler works on. Used in error messages.
        :type collection_name: str

        Subclasses: every keyword argument with a default becomes a collection setting!
        See: MongoQuerySettingsHandler
        """
        self.collection_name = collection_name

        #: Has input() been called? Other handlers may want to know.
        self.input_received = False
        self.input_value = None

        #: The MongoQuery this handler belongs to, if any
        self.mongoquery = None

    def with_mongoquery(self, mongoquery):
        """ Attach the handler to a MongoQuery

        :type mongoquery: mongomem.query.MongoQuery
        """
        self.mongoquery = mongoquery
        return self

    def __copy__(self):
        # A shallow copy is enough: handlers never modify their settings after __init__()
        cls = self.__class__
        result = cls.__new__(cls)
        result.__dict__.update(self.__dict__)
        return result

    def input_prepare_query_object(self, query_object):
        """ Rewrite the whole Query Object before any of the handlers gets its input

            `limit` packs `skip` into its own section here; `count` drops the sections it doesn't need.

        :type query_object: dict
        :rtype: dict
        """
        return query_object

    def input(self, qo_value):
        """ Receive the Query Object section, validate it

            Subclasses parse the value, then call super() to mark the handler as used.

        :param qo_value: The value of the section
        :rtype: MongoQueryHandlerBase
        :raises ValidationError
        """
        self.input_value = qo_value  # kept as is: never modified
        self.input_received = True

        # One object, one input
        self.input = self.__raise_input_not_reusable
        return self

    def is_input_empty(self):
        """ Did input() receive nothing to do? """
        return not self.input_value

    def __raise_input_not_reusable(self, *args, **kwargs):
        raise RuntimeError("{}.input() can't be called twice on the same object. "
                           "Wrap it with Reusable(), or copy() it first"
                           .format(self.__class__.__name__))

    def _raise(self, message, *args):
        """ Raise a ValidationError prefixed with the section name """
        raise ValidationError('{}: {}'.format(self.query_object_section_name, message.format(*args)))

    def apply(self, documents):
        """ Run the section over the documents

        :param documents: The documents. Never modified.
        :type documents: list[dict]
        :rtype: list[dict]
        """
        raise NotImplementedError()

    def get_final_input_value(self):
        """ The input, as the handler has finally understood it. Used by MongoQuery.get_final_query_object() """
        return self.input_value
