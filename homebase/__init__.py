"""
Household management API service.

This package provides a FastAPI application with database and provider
abstractions for calendars, finances, tasks, contacts and shopping, plus
the cron and webhook relay used by external integrations.
"""
