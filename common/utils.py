import datetime
import enum
import typing

import dataclasses
import marshmallow

from common import exceptions


def get_exception_message(exception: Exception) -> str:
    if isinstance(exception, type):
        return exception.__name__

    if hasattr(exception, "message") and exception.message:
        return exception.message

    return str(exception.args[0]) if len(exception.args) else exception.__class__.__name__


def validate_data_schema(
    data: typing.Union[typing.Dict, typing.List[typing.Dict]],
    schema: marshmallow.schema.Schema,
) -> typing.Dict:
    try:
        validated_data = schema.load(data=data, unknown=marshmallow.EXCLUDE)
    except marshmallow.exceptions.ValidationError as e:
        raise exceptions.ValidationSchemaException(get_exception_message(exception=e))

    return validated_data


def dataclass_to_dict(obj: typing.Any) -> typing.Any:
    if dataclasses.is_dataclass(obj):
        return {
            key: dataclass_to_dict(value)
            for key, value in dataclasses.asdict(obj).items()
        }
    elif isinstance(obj, (list, tuple)):
        return [dataclass_to_dict(item) for item in obj]
    elif isinstance(obj, dict):
        return {key: dataclass_to_dict(value) for key, value in obj.items()}
    elif isinstance(obj, enum.Enum):
        return obj.value
    elif isinstance(obj, datetime.datetime):
        return obj.isoformat()

    return obj
