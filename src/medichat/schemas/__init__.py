# src/medichat/schemas/__init__.py
from .base_schemas import BaseSchema, CamelInputSchema, OkResponse

__all__ = ["BaseSchema", "CamelInputSchema", "OkResponse"]
