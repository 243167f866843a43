"""Utility helpers used across ``rxcord`` modules."""

import traceback
from typing import Generic, TypeVar

TagT = TypeVar("TagT")
InnerDataT = TypeVar("InnerDataT")


class TaggedData(Generic[TagT, InnerDataT]):
    """
    A value travelling through a stream together with a tag.

    The gateway emits every dispatch as ``TaggedData(event_name, payload)``.

    Attributes:
        tag (TagT): The tag of the data.
        data (InnerDataT): The data itself.
    """

    def __init__(self, tag: TagT, data: InnerDataT):
        self.tag = tag
        self.data = data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TaggedData):
            return NotImplemented
        return self.tag == other.tag and self.data == other.data

    def __repr__(self) -> str:
        return f"(tag={self.tag}, {repr(self.data)})"


def get_short_error_info(e: BaseException) -> str:
    """
    Get a short error information from an exception.

    Args:
        e (BaseException): The exception to get the error information from.

    Returns:
        str: ``"<ExceptionType>: <message>"``.
    """
    return f"{type(e).__name__}: {str(e)}"


def get_full_error_info(e: BaseException) -> str:
    """Get the full formatted traceback of an exception."""
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))
