class ValidationSchemaException(Exception):
    pass
