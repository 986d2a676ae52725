from common import llm
from common.ids import LogicalClock, generate_id
from common.jsonio import atomic_write_json, load_document, load_json

__all__ = [
    "llm",
    "LogicalClock",
    "generate_id",
    "load_json",
    "load_document",
    "atomic_write_json",
]
