# app/db/__init__.py
"""
Database layer: declarative Base (app.db.base), engine factory
(app.db.engine) and the process-wide async session factory (app.db.session).

Import from the submodules explicitly; this package does not open any
connection on import.
"""
