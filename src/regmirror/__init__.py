"""
Cached, asynchronous mirror of the Windows registry backed by reg.exe.
"""

from regmirror.bulk import export_key, import_file
from regmirror.exceptions import ExternalOperationError, RegError, ValidationError
from regmirror.key import KeyNode
from regmirror.namespace import Registry, get_key, get_registry
from regmirror.types import HIVES, REMOTE_HIVES, Existence, View
from regmirror.values import (
    VALUE_TYPES,
    Binary,
    Dword,
    DwordBigEndian,
    ExpandString,
    FullResourceDescriptor,
    Link,
    MultiString,
    NoneValue,
    Qword,
    RegValue,
    ResourceList,
    ResourceRequirementsList,
    String,
    decode_wire,
    encode_wire,
    format_value,
    parse_value,
    value_type,
)

__version__ = "0.1.0"

__all__ = [
    "HIVES",
    "REMOTE_HIVES",
    "VALUE_TYPES",
    "Binary",
    "Dword",
    "DwordBigEndian",
    "Existence",
    "ExpandString",
    "ExternalOperationError",
    "FullResourceDescriptor",
    "KeyNode",
    "Link",
    "MultiString",
    "NoneValue",
    "Qword",
    "RegError",
    "RegValue",
    "Registry",
    "ResourceList",
    "ResourceRequirementsList",
    "String",
    "ValidationError",
    "View",
    "decode_wire",
    "encode_wire",
    "export_key",
    "format_value",
    "get_key",
    "get_registry",
    "import_file",
    "parse_value",
    "value_type",
]
