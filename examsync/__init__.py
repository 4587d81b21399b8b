"""Application package for the examsync attempt, grading and sync service."""
