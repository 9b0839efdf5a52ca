"""
FastAPI Todo backend package.

Serves account registration/login and per-user todo CRUD. The application
object lives in `todoapp.api.main`.
"""
