# app/api/__init__.py
"""
HTTP layer: dependencies (deps), Problem rendering (problem) and routers.

No re-exports; routers are mounted explicitly in app.main.
"""

__all__: list[str] = []
