"""
Services

Long-running parts of the watcher: scheduler, notifications, operator
commands and the daemon that ties them together.
"""
