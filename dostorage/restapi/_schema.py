# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Helpers for validating API input and output against JSON Schema.

See https://python-jsonschema.readthedocs.io/.
"""

from jsonschema import Draft4Validator

__all__ = [
    "getValidator",
]


def getValidator(schema):
    """
    Get a ``jsonschema`` validator for ``schema``.

    Schemas are self-contained: shared definitions are expressed with YAML
    anchors rather than ``$ref`` so no reference resolution is needed.

    :param dict schema: The JSON Schema to validate against.
    """
    Draft4Validator.check_schema(schema)
    return Draft4Validator(
        schema, format_checker=Draft4Validator.FORMAT_CHECKER)
