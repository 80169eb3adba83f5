import importlib
from typing import Text, Any, Union, List, Optional
from types import ModuleType


class SchemaError(ValueError):
    """ A required column is missing from a table, or holds values that can't be coerced to the required type """
    def __init__(self, message: str, columns: Optional[List[str]] = None):
        super().__init__(message)
        self.columns = [] if columns is None else list(columns)


class InvalidParameterError(ValueError):
    """ A parameter is not one of its allowed values """
    pass


class EmptyInputError(ValueError):
    """ A table has no rows where at least one is required """
    pass


class ChromosomeNotFoundError(EmptyInputError):
    """ The requested chromosome has no cytoband rows """
    def __init__(self, chromosome: str, available: Optional[List[str]] = None):
        message = f"chromosome {chromosome} not found in cytoband data"
        if available:
            message += f" (available: {','.join(available)})"
        super().__init__(message)
        self.chromosome = chromosome


class CytobandLookupError(LookupError):
    """ Cytoband data could not be retrieved for a genome """
    pass


def add_exception_context(exception: Exception, context: str):
    """
    Add additional context to a caught exception
    Args:
        exception: Exception
            Exception that was caught
        context: str
            Extra info to add to exception.
    """
    if len(exception.args) == 1 and type(exception.args[0]) is str:
        exception.args = (f"{context}: {exception.args[0]}",)
    else:
        exception.args = (context,) + exception.args


def dynamic_import(
        obj_name: Text,
        base: Union[Text, ModuleType, None] = None
) -> Any:
    """
    Import an object by name and return it. Can descend object hierarchy by import_module() or getattr().
    Args:
        obj_name: str
            Name of object in hierarchy, with layers separated by '.'
            e.g. "cn_view.cn_view.main"
        base: str, ModuleType, or None (Default=None)
            Base package / object for import.
            If None, import from global namespace.
            If a str, import from package with that name.
    Returns:
        obj: Any
            Imported object
    """
    if isinstance(base, str):
        base = importlib.import_module(base)
    while '.' in obj_name:
        top_level, obj_name = obj_name.split('.', 1)
        if base is None:
            base = importlib.import_module(top_level)
        elif hasattr(base, top_level):
            base = getattr(base, top_level)
        else:
            base = importlib.import_module('.' + top_level, package=base.__name__)

    if base is None:
        base = importlib.import_module(obj_name)
    elif hasattr(base, obj_name):
        base = getattr(base, obj_name)
    else:
        base = importlib.import_module('.' + obj_name, package=base.__name__)
    return base
