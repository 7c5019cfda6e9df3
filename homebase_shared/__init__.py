"""
Domain logic shared by the API service and background jobs: recurrence
rules, event series edits and agenda aggregation.
"""
