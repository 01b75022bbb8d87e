"""
Job translation, submission, watching and cleanup.
"""
