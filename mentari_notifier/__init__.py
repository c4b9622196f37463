"""
Mentari Notifier - WhatsApp summaries of unfinished Mentari coursework.

This package provides functionality to:
- Extract incomplete items from the cached Mentari course snapshot
- Format a short summary message for the student
- Detect whether the summary changed since the last delivery
- Deliver the summary to a notification webhook
"""

__version__ = "1.0.0"
__author__ = "Mentari Notifier Team"
