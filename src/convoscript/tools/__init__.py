from .builtin import BUILTIN_HANDLERS, ask, code

__all__ = ["BUILTIN_HANDLERS", "ask", "code"]
