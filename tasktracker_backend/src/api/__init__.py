"""
Team Task Tracker backend package.

Task CRUD with a field-level audit trail, daily activity timelines and
dashboard views, served by FastAPI. The app instance lives in .main.
"""
