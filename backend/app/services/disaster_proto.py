"""Protocol Buffers messages for the binary disaster representation.

The message classes are built at import time from a ``FileDescriptorProto``
in a private descriptor pool, which keeps the wire schema next to the code
without a protoc build step. The schema is equivalent to::

    syntax = "proto3";
    package disasters;

    message Disaster {
      string id = 1;
      string type = 2;
      string location = 3;     // GeoJSON point as a JSON string
      string date = 4;         // YYYY-MM-DD
      string description = 5;
      string status = 6;
      string created_at = 7;   // ISO-8601
      string updated_at = 8;   // ISO-8601
    }
    message DisasterList { repeated Disaster disasters = 1; }
    message DisasterId { string id = 1; }
    message Empty {}

Example:
    Encode and decode a list:
        >>> from app.services import disaster_proto
        >>> message = disaster_proto.DisasterList()
        >>> message.disasters.add(id="abc", type="flood")
        >>> data = message.SerializeToString()
        >>> disaster_proto.DisasterList.FromString(data).disasters[0].type
        'flood'
"""

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

MEDIA_TYPE = "application/x-protobuf"
PACKAGE = "disasters"

DISASTER_FIELDS = (
    "id",
    "type",
    "location",
    "date",
    "description",
    "status",
    "created_at",
    "updated_at",
)

_FIELD = descriptor_pb2.FieldDescriptorProto


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="disasters/disaster.proto",
        package=PACKAGE,
        syntax="proto3",
    )

    disaster = file_proto.message_type.add(name="Disaster")
    for number, name in enumerate(DISASTER_FIELDS, start=1):
        disaster.field.add(
            name=name,
            number=number,
            type=_FIELD.TYPE_STRING,
            label=_FIELD.LABEL_OPTIONAL,
        )

    disaster_list = file_proto.message_type.add(name="DisasterList")
    disaster_list.field.add(
        name="disasters",
        number=1,
        type=_FIELD.TYPE_MESSAGE,
        label=_FIELD.LABEL_REPEATED,
        type_name=f".{PACKAGE}.Disaster",
    )

    disaster_id = file_proto.message_type.add(name="DisasterId")
    disaster_id.field.add(
        name="id",
        number=1,
        type=_FIELD.TYPE_STRING,
        label=_FIELD.LABEL_OPTIONAL,
    )

    file_proto.message_type.add(name="Empty")
    return file_proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_build_file().SerializeToString())


def _message_class(name: str) -> type:
    return message_factory.GetMessageClass(
        _POOL.FindMessageTypeByName(f"{PACKAGE}.{name}")
    )


Disaster = _message_class("Disaster")
DisasterList = _message_class("DisasterList")
DisasterId = _message_class("DisasterId")
Empty = _message_class("Empty")
