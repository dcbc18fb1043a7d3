# src/medichat/models/types.py
from enum import Enum as PyEnum
from typing import Type
from sqlalchemy import Enum


def str_enum(enum_cls: Type[PyEnum], length: int = 32) -> Enum:
    """Persist enum *values* (not member names) as VARCHAR on every dialect"""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
        length=length,
    )
